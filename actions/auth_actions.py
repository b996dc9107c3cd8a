from __future__ import annotations

from actions.helpers import is_kyc_verified, load_profile, load_user
from utils import ApiError, AuthContext, normalize_role


def get_me(data, auth: AuthContext | None, db, cfg):
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Invalid or expired session")

    user = load_user(db, auth.userId)
    if not user:
        raise ApiError("AUTH_INVALID", "User missing")
    if str(user.status or "").upper() != "ACTIVE":
        raise ApiError("AUTH_INVALID", "User is disabled")

    me = {
        "userId": user.userId,
        "email": user.email or "",
        "name": user.name or "",
        "role": normalize_role(user.role),
    }
    if normalize_role(user.role) == "STUDENT":
        profile = load_profile(db, user.userId)
        me["kycVerified"] = is_kyc_verified(profile)
        me["highestPlacementTier"] = getattr(profile, "highestPlacementTier", None)
    return {"me": me}
