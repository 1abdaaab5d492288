"""Bearer token metadata."""
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


@dataclass
class TokenMetadata:
    """
    Metadata of the subject's identity token.

    `auth_time` is when the subject last actively authenticated (not when the token
    was refreshed); session freshness is measured from it.
    """

    subject_id: str
    auth_time: datetime
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TokenMetadata":
        """Build metadata from decoded JWT claims. Falls back to `iat` when `auth_time` is absent."""
        auth_time = _timestamp(claims.get("auth_time")) or _timestamp(claims.get("iat"))
        if auth_time is None:
            raise ValueError("Token has neither auth_time nor iat claim")
        return cls(
            subject_id=claims["sub"],
            auth_time=auth_time,
            issued_at=_timestamp(claims.get("iat")),
            expires_at=_timestamp(claims.get("exp")),
            claims=claims,
        )
