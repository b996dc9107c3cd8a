"""
Eligibility rules shared by the student QR path and the admin scan path.

Both paths must reach the same verdict for the same data, so everything here is
pure: callers load rows and pass them in.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from utils import parse_json_list


class PlacementTier(str, enum.Enum):
    """
    Offer classification, declared from highest to lowest priority.

    DREAM sits between TIER_1 and TIER_2 for the "highest tier" bookkeeping;
    dream offers bypass the tier lock entirely through Job.isDreamOffer.
    """

    TIER_1 = "TIER_1"
    DREAM = "DREAM"
    TIER_2 = "TIER_2"
    TIER_3 = "TIER_3"

    @property
    def priority(self) -> int:
        # Lower value wins.
        return _TIER_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any) -> Optional["PlacementTier"]:
        s = str(value.value if isinstance(value, PlacementTier) else value or "").strip().upper()
        if not s:
            return None
        try:
            return cls(s)
        except ValueError:
            return None


_TIER_ORDER = list(PlacementTier)


def is_higher_tier(candidate: Any, current: Any) -> bool:
    """
    True when `candidate` should replace `current` as a student's highest tier.

    An unknown or empty current tier is always replaced by a known candidate; an
    unknown candidate never replaces anything.
    """

    new = PlacementTier.parse(candidate)
    if new is None:
        return False
    old = PlacementTier.parse(current)
    if old is None:
        return True
    return new.priority < old.priority


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: Optional[str] = None
    code: str = ""

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"eligible": self.eligible}
        if not self.eligible:
            out["reason"] = self.reason
            out["code"] = self.code
        return out


ELIGIBLE = Eligibility(eligible=True)


def _reject(code: str, reason: str) -> Eligibility:
    return Eligibility(eligible=False, reason=reason, code=code)


def can_apply_to_tier(student_tier: Any, job_tier: Any, is_dream_offer: bool) -> Eligibility:
    if is_dream_offer:
        return ELIGIBLE

    current = PlacementTier.parse(student_tier)
    if current is None:
        return ELIGIBLE

    target = PlacementTier.parse(job_tier)
    if current is PlacementTier.TIER_1:
        return _reject("TIER_LOCKED", "Already placed in Tier 1 and blocked from further placements")
    if current is PlacementTier.TIER_2:
        if target is PlacementTier.TIER_1:
            return ELIGIBLE
        return _reject("TIER_LOCKED", "Placed in Tier 2. Only Tier 1 jobs are open")
    if current is PlacementTier.TIER_3:
        if target in (PlacementTier.TIER_1, PlacementTier.TIER_2):
            return ELIGIBLE
        return _reject("TIER_LOCKED", "Placed in Tier 3. Only Tier 1 or Tier 2 jobs are open")
    return ELIGIBLE


def batch_year(batch: Any) -> str:
    if not batch or not isinstance(batch, str):
        return ""
    return batch.split("-")[-1].strip()


@dataclass(frozen=True)
class StudentSnapshot:
    highest_tier: Optional[str]
    cgpa: float
    branch: str
    batch: str
    has_active_backlogs: bool

    @classmethod
    def from_profile(cls, profile) -> "StudentSnapshot":
        cgpa = getattr(profile, "finalCgpa", None) or getattr(profile, "cgpa", None) or 0
        return cls(
            highest_tier=getattr(profile, "highestPlacementTier", None) or None,
            cgpa=float(cgpa),
            branch=str(getattr(profile, "branch", "") or ""),
            batch=str(getattr(profile, "batch", "") or ""),
            has_active_backlogs=bool(getattr(profile, "activeBacklogs", False))
            or str(getattr(profile, "hasBacklogs", "") or "").strip().lower() == "yes",
        )


@dataclass(frozen=True)
class JobCriteria:
    tier: str
    is_dream_offer: bool
    min_cgpa: Optional[float]
    allowed_branches: tuple[str, ...]
    eligible_batch: str
    max_backlogs: Optional[int]

    @classmethod
    def from_job(cls, job) -> "JobCriteria":
        branches = [str(b).strip() for b in parse_json_list(getattr(job, "allowedBranchesJson", "")) if str(b).strip()]
        return cls(
            tier=str(getattr(job, "tier", "") or PlacementTier.TIER_3.value),
            is_dream_offer=bool(getattr(job, "isDreamOffer", False)),
            min_cgpa=getattr(job, "minCgpa", None),
            allowed_branches=tuple(branches),
            eligible_batch=str(getattr(job, "eligibleBatch", "") or ""),
            max_backlogs=getattr(job, "maxBacklogs", None),
        )


def check_job_eligibility(student: StudentSnapshot, job: JobCriteria) -> Eligibility:
    tier_check = can_apply_to_tier(student.highest_tier, job.tier, job.is_dream_offer)
    if not tier_check.eligible:
        return tier_check

    if job.min_cgpa and student.cgpa < job.min_cgpa:
        return _reject("CGPA", f"Minimum CGPA required: {job.min_cgpa}. Your CGPA: {student.cgpa:.2f}")

    if job.allowed_branches and student.branch and student.branch not in job.allowed_branches:
        return _reject("BRANCH", f"Branch ({student.branch}) is not eligible for this job")

    if job.eligible_batch and student.batch:
        if batch_year(student.batch) != batch_year(job.eligible_batch):
            return _reject("BATCH", f"Only {job.eligible_batch} batch is eligible. Your batch: {student.batch}")

    if job.max_backlogs is not None and job.max_backlogs == 0 and student.has_active_backlogs:
        return _reject("BACKLOGS", "No active backlogs allowed for this job")

    return ELIGIBLE


def previous_round(target, all_rounds: Iterable[Any]):
    """The non-removed round with the greatest order strictly below the target's."""
    candidates = [
        r for r in all_rounds if not getattr(r, "isRemoved", False) and int(r.order) < int(target.order)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda r: int(r.order))


def final_round(all_rounds: Iterable[Any]):
    live = [r for r in all_rounds if not getattr(r, "isRemoved", False)]
    if not live:
        return None
    return max(live, key=lambda r: int(r.order))


def check_round_eligibility(
    target,
    all_rounds: Iterable[Any],
    attendance_by_round_id: Mapping[str, Any],
    base: Eligibility,
) -> Eligibility:
    if int(target.order) == 1:
        return base

    prev = previous_round(target, all_rounds)
    if prev is None:
        return base

    prev_attendance = attendance_by_round_id.get(prev.roundId)
    if prev_attendance is None:
        return _reject("NOT_ATTENDED_PREVIOUS", f"Student has not attended the previous round ({prev.name}) yet")

    status = str(getattr(prev_attendance, "status", "") or "").upper()
    if status == "PASSED":
        return ELIGIBLE
    if status == "FAILED":
        return _reject("NOT_SHORTLISTED", f"Student was not shortlisted from {prev.name}")
    return _reject("AWAITING_RESULTS", f"Waiting for results from {prev.name}")
