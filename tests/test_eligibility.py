from types import SimpleNamespace

import pytest

from eligibility import (
    ELIGIBLE,
    JobCriteria,
    PlacementTier,
    StudentSnapshot,
    batch_year,
    can_apply_to_tier,
    check_job_eligibility,
    check_round_eligibility,
    final_round,
    is_higher_tier,
    previous_round,
)


def _student(**kw):
    base = {"highest_tier": None, "cgpa": 8.0, "branch": "CSE", "batch": "2021-2025", "has_active_backlogs": False}
    base.update(kw)
    return StudentSnapshot(**base)


def _job(**kw):
    base = {
        "tier": "TIER_2",
        "is_dream_offer": False,
        "min_cgpa": None,
        "allowed_branches": (),
        "eligible_batch": "",
        "max_backlogs": None,
    }
    base.update(kw)
    return JobCriteria(**base)


def _round(round_id, order, name=None, removed=False):
    return SimpleNamespace(roundId=round_id, order=order, name=name or round_id, isRemoved=removed)


def test_tier_priority_order():
    assert [t.value for t in sorted(PlacementTier, key=lambda t: t.priority)] == ["TIER_1", "DREAM", "TIER_2", "TIER_3"]
    assert is_higher_tier("TIER_1", "DREAM")
    assert is_higher_tier("DREAM", "TIER_2")
    assert not is_higher_tier("TIER_3", "TIER_2")
    assert not is_higher_tier("TIER_2", "TIER_2")


def test_tier_merge_fills_empty_and_ignores_unknown():
    assert is_higher_tier("TIER_3", None)
    assert is_higher_tier("TIER_3", "")
    assert not is_higher_tier("PLATINUM", None)
    assert PlacementTier.parse(" tier_1 ") is PlacementTier.TIER_1
    assert PlacementTier.parse("nope") is None


@pytest.mark.parametrize(
    "student_tier,job_tier,dream,eligible",
    [
        (None, "TIER_3", False, True),
        ("TIER_1", "TIER_1", False, False),
        ("TIER_1", "TIER_3", True, True),
        ("TIER_2", "TIER_1", False, True),
        ("TIER_2", "TIER_2", False, False),
        ("TIER_3", "TIER_2", False, True),
        ("TIER_3", "TIER_3", False, False),
        ("DREAM", "TIER_3", False, True),
    ],
)
def test_can_apply_to_tier(student_tier, job_tier, dream, eligible):
    assert can_apply_to_tier(student_tier, job_tier, dream).eligible is eligible


def test_tier_lock_reason_is_surfaced():
    res = can_apply_to_tier("TIER_1", "TIER_1", False)
    assert res.code == "TIER_LOCKED"
    assert "Tier 1" in res.reason
    assert res.as_dict() == {"eligible": False, "reason": res.reason, "code": "TIER_LOCKED"}
    assert ELIGIBLE.as_dict() == {"eligible": True}


def test_job_eligibility_rules_in_order():
    assert check_job_eligibility(_student(cgpa=6.0, branch="ME"), _job(min_cgpa=7.0, allowed_branches=("CSE",))).code == "CGPA"
    assert check_job_eligibility(_student(branch="ME"), _job(allowed_branches=("CSE", "ISE"))).code == "BRANCH"
    assert check_job_eligibility(_student(batch="2020-2024"), _job(eligible_batch="2021-2025")).code == "BATCH"
    assert check_job_eligibility(_student(has_active_backlogs=True), _job(max_backlogs=0)).code == "BACKLOGS"
    assert check_job_eligibility(_student(has_active_backlogs=True), _job(max_backlogs=2)).eligible


def test_job_eligibility_skips_blank_inputs():
    assert check_job_eligibility(_student(branch=""), _job(allowed_branches=("CSE",))).eligible
    assert check_job_eligibility(_student(batch=""), _job(eligible_batch="2025")).eligible
    assert check_job_eligibility(_student(batch="2021-2025"), _job(eligible_batch="2025")).eligible


def test_cgpa_reason_formats_two_decimals():
    res = check_job_eligibility(_student(cgpa=6.5), _job(min_cgpa=7.5))
    assert res.reason == "Minimum CGPA required: 7.5. Your CGPA: 6.50"


def test_snapshot_prefers_final_cgpa_and_reads_backlog_flags():
    profile = SimpleNamespace(
        finalCgpa=9.1, cgpa=7.0, branch="CSE", batch="2021-2025", activeBacklogs=False, hasBacklogs="yes", highestPlacementTier=None
    )
    snap = StudentSnapshot.from_profile(profile)
    assert snap.cgpa == 9.1
    assert snap.has_active_backlogs is True


def test_criteria_from_job_parses_branch_list():
    job = SimpleNamespace(tier="TIER_1", isDreamOffer=False, minCgpa=7.0, allowedBranchesJson='["CSE", "ISE"]', eligibleBatch="2025", maxBacklogs=0)
    crit = JobCriteria.from_job(job)
    assert crit.allowed_branches == ("CSE", "ISE")
    assert crit.max_backlogs == 0


def test_batch_year():
    assert batch_year("2021-2025") == "2025"
    assert batch_year("2025") == "2025"
    assert batch_year(None) == ""


def test_previous_round_skips_removed_rounds():
    rounds = [_round("r1", 1), _round("r2", 2, removed=True), _round("r3", 3)]
    assert previous_round(rounds[2], rounds).roundId == "r1"
    assert final_round(rounds).roundId == "r3"
    assert final_round([]) is None


def test_first_round_returns_job_eligibility_verbatim():
    r1 = _round("r1", 1)
    base = check_job_eligibility(_student(cgpa=5.0), _job(min_cgpa=6.0))
    assert check_round_eligibility(r1, [r1], {}, base) is base


def test_round_progression_outcomes():
    r1, r2 = _round("r1", 1, "Aptitude"), _round("r2", 2, "Interview")
    rounds = [r1, r2]

    missing = check_round_eligibility(r2, rounds, {}, ELIGIBLE)
    assert missing.code == "NOT_ATTENDED_PREVIOUS"
    assert "Aptitude" in missing.reason

    failed = check_round_eligibility(r2, rounds, {"r1": SimpleNamespace(status="FAILED")}, ELIGIBLE)
    assert failed.code == "NOT_SHORTLISTED"

    waiting = check_round_eligibility(r2, rounds, {"r1": SimpleNamespace(status="ATTENDED")}, ELIGIBLE)
    assert waiting.code == "AWAITING_RESULTS"

    passed = check_round_eligibility(r2, rounds, {"r1": SimpleNamespace(status="PASSED")}, ELIGIBLE)
    assert passed.eligible
