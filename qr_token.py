from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

QR_TOKEN_AUDIENCE = "round-attendance"
QR_TOKEN_ALGORITHM = "HS256"
QR_PAYLOAD_FIELDS = ("userId", "jobId", "roundId", "sessionId")

VALID = "VALID"
NOT_SIGNED = "NOT_SIGNED"
INVALID = "INVALID"
EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class TokenVerification:
    status: str
    payload: dict[str, str] = field(default_factory=dict)
    reason: str = ""

    @property
    def valid(self) -> bool:
        return self.status == VALID


def issue_qr_token(payload: dict[str, Any], *, secret: str, ttl_seconds: int) -> str:
    if not secret:
        raise RuntimeError("QR token secret is not configured")

    claims: dict[str, Any] = {}
    for key in QR_PAYLOAD_FIELDS:
        value = str(payload.get(key) or "").strip()
        if not value:
            raise ValueError(f"QR token payload missing {key}")
        claims[key] = value

    now = datetime.now(timezone.utc)
    claims.update(
        {
            "aud": QR_TOKEN_AUDIENCE,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=int(ttl_seconds))).timestamp()),
        }
    )
    return jwt.encode(claims, secret, algorithm=QR_TOKEN_ALGORITHM)


def verify_qr_token(token: Any, *, secret: str) -> TokenVerification:
    tok = str(token or "").strip()
    if not tok:
        return TokenVerification(status=NOT_SIGNED, reason="Empty QR payload")

    # Anything without a JWS header is not ours; the caller may try the legacy scheme.
    try:
        header = jwt.get_unverified_header(tok)
    except jwt.DecodeError:
        return TokenVerification(status=NOT_SIGNED, reason="Not a signed QR token")
    if str(header.get("alg") or "") != QR_TOKEN_ALGORITHM:
        return TokenVerification(status=INVALID, reason="Unsupported QR token algorithm")

    try:
        claims = jwt.decode(
            tok,
            secret,
            algorithms=[QR_TOKEN_ALGORITHM],
            audience=QR_TOKEN_AUDIENCE,
            options={"require": ["exp", "iat", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        return TokenVerification(status=EXPIRED, reason="QR code has expired. Ask the student to refresh it")
    except jwt.InvalidTokenError:
        return TokenVerification(status=INVALID, reason="QR code signature is invalid")

    payload: dict[str, str] = {}
    for key in QR_PAYLOAD_FIELDS:
        value = str(claims.get(key) or "").strip()
        if not value:
            return TokenVerification(status=INVALID, reason=f"QR token missing {key}")
        payload[key] = value
    return TokenVerification(status=VALID, payload=payload)
