# jinnie/models/session.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jinnie.core.timeutils import isoformat, parse_datetime, utcnow

FULL = "full"
RESERVATION = "reservation"
SESSION_TYPES = (FULL, RESERVATION)

RESERVATION_SESSION_TTL = timedelta(hours=48)

# sign-ins backed by these providers are never time-boxed
EXEMPT_PROVIDERS = frozenset({"google.com", "apple.com"})


def is_provider_backed(provider: Optional[str]) -> bool:
    return (provider or "").strip().lower() in EXEMPT_PROVIDERS


@dataclass
class ReservationSession:
    """
    Client-local record of how the current browser identity was obtained.
    A `reservation` session comes from a passwordless email link and is only
    good for RESERVATION_SESSION_TTL; a `full` session is an account sign-in.
    """
    type: str
    email: Optional[str] = None
    provider: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def start(cls, session_type: str, email: Optional[str] = None, provider: Optional[str] = None,
              now: Optional[datetime] = None, ttl: timedelta = RESERVATION_SESSION_TTL) -> "ReservationSession":
        if session_type not in SESSION_TYPES:
            raise ValueError(f"Unknown session type {session_type!r}")
        created = now or utcnow()
        return cls(type=session_type, email=email, provider=provider, created_at=created, expires_at=created + ttl)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Only reservation-only sessions expire, and never when a Google/Apple
        sign-in backs them. A reservation session with no expiry recorded is
        treated as expired so it gets re-verified.
        """
        if self.type != RESERVATION or is_provider_backed(self.provider):
            return False
        if self.expires_at is None:
            return True
        return self.expires_at < (now or utcnow())

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ReservationSession":
        if d is None:
            raise ValueError("Cannot construct ReservationSession from None")
        type_ = str(d.get("type") or "").strip().lower()
        if type_ not in SESSION_TYPES:
            raise ValueError(f"Unknown session type {type_!r}")
        return cls(
            type=type_,
            email=d.get("email") or None,
            provider=d.get("provider") or None,
            created_at=parse_datetime(d.get("createdAt") or d.get("created_at")),
            expires_at=parse_datetime(d.get("expiresAt") or d.get("expires_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "email": self.email,
            "provider": self.provider,
            "createdAt": isoformat(self.created_at),
            "expiresAt": isoformat(self.expires_at),
        }
