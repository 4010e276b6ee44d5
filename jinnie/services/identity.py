# jinnie/services/identity.py
"""
Identity for the service: passwordless email-link sign-in, token issue/refresh
and the `Identity` a verified token resolves to.

Two kinds of session exist. A `full` session is an account sign-in (password,
Google, Apple). A `reservation` session is what a visitor gets from the email
link: its identity is good for RESERVATION_SESSION_HOURS after the link was
opened, and its refresh tokens stop working at the same moment.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlparse, urlunparse, parse_qsl

from jinnie.config import settings
from jinnie.core.logger import get_logger
from jinnie.core.reservations import Caller, is_valid_email
from jinnie.core.security import create_id_token, decode_id_token
from jinnie.core.timeutils import isoformat, parse_datetime, utcnow
from jinnie.database import ConditionFailed, FileBackedDB
from jinnie.models.session import FULL, RESERVATION, is_provider_backed
from jinnie.services import mailer

logger = get_logger(__name__)

EMAIL_LINK_PROVIDER = "emailLink"
PASSWORD_PROVIDER = "password"


class IdentityError(Exception):
    pass


class InvalidLinkError(IdentityError):
    pass


class RefreshError(IdentityError):
    pass


@dataclass(frozen=True)
class Identity:
    uid: str
    email: Optional[str]
    email_verified: bool
    provider: str
    session_type: str
    auth_time: Optional[datetime] = None

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Identity":
        auth_time = claims.get("auth_time")
        return cls(
            uid=str(claims["sub"]),
            email=claims.get("email"),
            email_verified=bool(claims.get("email_verified")),
            provider=claims.get("provider") or PASSWORD_PROVIDER,
            session_type=claims.get("session_type") or FULL,
            auth_time=datetime.fromtimestamp(int(auth_time), tz=timezone.utc) if auth_time else None,
        )

    def session_expires_at(self) -> Optional[datetime]:
        if self.session_type != RESERVATION or is_provider_backed(self.provider):
            return None
        if self.auth_time is None:
            return utcnow()
        return self.auth_time + timedelta(hours=settings.RESERVATION_SESSION_HOURS)

    def is_session_expired(self, now: Optional[datetime] = None) -> bool:
        expires_at = self.session_expires_at()
        return expires_at is not None and expires_at <= (now or utcnow())

    def as_caller(self) -> Caller:
        return Caller(uid=self.uid, email=self.email, email_verified=self.email_verified)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "email": self.email,
            "emailVerified": self.email_verified,
            "provider": self.provider,
            "sessionType": self.session_type,
            "authTime": isoformat(self.auth_time),
            "sessionExpiresAt": isoformat(self.session_expires_at()),
        }


def verify_token(token: str) -> Identity:
    """Decode an id token into an Identity. Expired reservation sessions are rejected."""
    identity = Identity.from_claims(decode_id_token(token))
    if identity.is_session_expired():
        raise IdentityError("Reservation session expired")
    return identity


# --- users ---

def is_user_verified(user: Dict[str, Any]) -> bool:
    return str(user.get("email_verified") or "") == "1"


def find_or_create_user(db: FileBackedDB, email: str, provider: str) -> Dict[str, Any]:
    normalized = email.strip().lower()
    user = db.get_record("users", "email", normalized)
    if user:
        return user
    return db.create_record(
        "users",
        {
            "username": normalized,
            "email": normalized,
            "email_verified": "0",
            "password_hash": "",
            "full_name": "",
            "provider": provider,
            "created_at": isoformat(utcnow()),
        },
        id_field="id",
    )


def claim_user_for_email(db: FileBackedDB, email: str) -> Dict[str, Any]:
    """
    User for an address whose inbox was just proven. A password set before the
    address was confirmed was set by an unproven party: it is dropped and the
    user's refresh tokens revoked before the row is marked verified.
    """
    user = find_or_create_user(db, email, EMAIL_LINK_PROVIDER)
    if is_user_verified(user):
        return user
    updates: Dict[str, Any] = {"email_verified": "1"}
    if user.get("password_hash"):
        logger.warning("Dropping unverified password on uid=%s after email-link sign-in", user.get("id"))
        updates["password_hash"] = ""
        db.delete_record("refresh_tokens", "user_id", user["id"])
    return db.update_record("users", "id", user["id"], updates) or user


# --- tokens ---

def _refresh_expiry(session_type: str, provider: str, auth_time: datetime) -> datetime:
    expires_at = utcnow() + timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES)
    if session_type == RESERVATION and not is_provider_backed(provider):
        expires_at = min(expires_at, auth_time + timedelta(hours=settings.RESERVATION_SESSION_HOURS))
    return expires_at


def _create_refresh_token_record(db: FileBackedDB, identity: Identity) -> str:
    token = secrets.token_urlsafe(32)
    auth_time = identity.auth_time or utcnow()
    db.create_record(
        "refresh_tokens",
        {
            "token": token,
            "user_id": identity.uid,
            "email": identity.email or "",
            "email_verified": "1" if identity.email_verified else "0",
            "provider": identity.provider,
            "session_type": identity.session_type,
            "auth_time": isoformat(auth_time),
            "created_at": isoformat(utcnow()),
            "expires_at": isoformat(_refresh_expiry(identity.session_type, identity.provider, auth_time)),
        },
        id_field="id",
    )
    return token


def issue_tokens(db: FileBackedDB, identity: Identity) -> Dict[str, Any]:
    id_token = create_id_token(
        uid=identity.uid,
        email=identity.email,
        email_verified=identity.email_verified,
        provider=identity.provider,
        session_type=identity.session_type,
        auth_time=identity.auth_time,
    )
    refresh_token = _create_refresh_token_record(db, identity)
    return {
        "id_token": id_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.ID_TOKEN_EXPIRE_MINUTES * 60,
        "user": identity.to_dict(),
    }


def _is_refresh_expired(row: Dict[str, Any]) -> bool:
    expires_at = parse_datetime(row.get("expires_at"))
    if expires_at is None:
        return True
    return utcnow() >= expires_at


def refresh_tokens(db: FileBackedDB, token: str) -> Dict[str, Any]:
    """Rotate a refresh token: the old record is deleted and a new pair issued."""
    if not token:
        raise RefreshError("Refresh token required")
    row = db.get_record("refresh_tokens", "token", token)
    if not row:
        raise RefreshError("Invalid refresh token")
    db.delete_record("refresh_tokens", "token", token)
    if _is_refresh_expired(row):
        raise RefreshError("Refresh token expired")
    if not row.get("user_id"):
        raise RefreshError("Invalid refresh token owner")

    identity = Identity(
        uid=str(row["user_id"]),
        email=row.get("email") or None,
        email_verified=str(row.get("email_verified")) == "1",
        provider=row.get("provider") or PASSWORD_PROVIDER,
        session_type=row.get("session_type") or FULL,
        auth_time=parse_datetime(row.get("auth_time")),
    )
    return issue_tokens(db, identity)


# --- email links ---

def build_link(redirect_url: str, email: str, code: str) -> str:
    parts = urlparse(redirect_url)
    query = dict(parse_qsl(parts.query))
    query.update({"mode": "signIn", "oobCode": code, "email": email})
    return urlunparse(parts._replace(query=urlencode(query)))


def send_email_link(db: FileBackedDB, email: str, redirect_url: Optional[str] = None) -> str:
    """
    Create a one-time sign-in code for `email` and mail the link. Returns the
    link (the route never echoes it back to the caller).
    """
    email = (email or "").strip()
    if not is_valid_email(email):
        raise IdentityError("Invalid email")
    code = secrets.token_urlsafe(24)
    now = utcnow()
    db.create_record(
        "email_links",
        {
            "code": code,
            "email": email.lower(),
            "redirect_url": redirect_url or "",
            "created_at": isoformat(now),
            "expires_at": isoformat(now + timedelta(minutes=settings.EMAIL_LINK_EXPIRE_MINUTES)),
            "used_at": "",
        },
        id_field="id",
    )
    link = build_link(redirect_url or settings.PUBLIC_BASE_URL, email, code)
    mailer.send_sign_in_link(email, link)
    logger.info("Sign-in link issued for %s", email)
    return link


def complete_email_link(db: FileBackedDB, email: str, code: str) -> Dict[str, Any]:
    """
    Redeem a sign-in code. The code is single-use: marking it used is a
    compare-and-set, so a replayed link fails even under concurrent requests.
    """
    email = (email or "").strip().lower()
    row = db.get_record("email_links", "code", code) if code else None
    if not row or (row.get("email") or "").lower() != email:
        raise InvalidLinkError("Invalid sign-in link")
    expires_at = parse_datetime(row.get("expires_at"))
    if expires_at is None or expires_at <= utcnow():
        raise InvalidLinkError("Sign-in link expired")
    try:
        db.update_record_if("email_links", "code", code, {"used_at": ""}, {"used_at": isoformat(utcnow())})
    except ConditionFailed:
        raise InvalidLinkError("Sign-in link already used")

    user = claim_user_for_email(db, email)
    identity = Identity(
        uid=str(user["id"]),
        email=email,
        email_verified=True,
        provider=EMAIL_LINK_PROVIDER,
        session_type=RESERVATION,
        auth_time=utcnow(),
    )
    logger.info("Email link redeemed for uid=%s", identity.uid)
    return issue_tokens(db, identity)
