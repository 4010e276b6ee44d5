# jinnie/core/security.py
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from jinnie.config import settings
from jinnie.core.timeutils import utcnow

# pbkdf2 keeps passlib independent of the bcrypt wheel
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenError(Exception):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def create_id_token(
    uid: str,
    email: Optional[str],
    email_verified: bool,
    provider: str,
    session_type: str,
    auth_time: Optional[datetime] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Sign an identity token. `auth_time` is when the user actually proved who
    they are; refreshed tokens carry the first sign-in time forward.
    """
    now = utcnow()
    minutes = settings.ID_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    claims = {
        "sub": str(uid),
        "email": email,
        "email_verified": bool(email_verified),
        "provider": provider,
        "session_type": session_type,
        "auth_time": int((auth_time or now).timestamp()),
        "iat": int(now.timestamp()),
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_id_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raises TokenError on anything invalid."""
    if not token:
        raise TokenError("Token required")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise TokenError(str(e)) from e
    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload
