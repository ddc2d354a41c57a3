"""Cached public key models."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class PublicKeyRecord:
    username: str
    public_key: str
    key_id: str
    fetched_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        for name in ("username", "public_key", "key_id"):
            if not isinstance(getattr(self, name), str):
                raise ValueError(f"{name} must be a string")
        if not self.username:
            raise ValueError("username cannot be empty")
        if self.expires_at < self.fetched_at:
            raise ValueError("expires_at must not precede fetched_at")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) > self.expires_at

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "public_key": self.public_key, "key_id": self.key_id,
                "fetched_at": self.fetched_at.isoformat(), "expires_at": self.expires_at.isoformat()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PublicKeyRecord":
        return cls(username=data["username"], public_key=data["public_key"], key_id=data.get("key_id", ""),
                   fetched_at=_parse_timestamp(data["fetched_at"]), expires_at=_parse_timestamp(data["expires_at"]))


@dataclass(frozen=True)
class CacheStats:
    total: int
    valid: int
    expired: int


def _parse_timestamp(ts: str) -> datetime:
    """Parse an ISO 8601 timestamp, treating 'Z' and naive values as UTC."""
    if not isinstance(ts, str):
        raise ValueError(f"timestamp must be a string, got {type(ts).__name__}")
    cleaned = ts.replace("Z", "+00:00") if ts.endswith("Z") else ts
    parsed = datetime.fromisoformat(cleaned)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
