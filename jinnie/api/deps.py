# jinnie/api/deps.py
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from jinnie.core.logger import get_logger
from jinnie.core.security import TokenError
from jinnie.database import FileBackedDB, db
from jinnie.services.identity import Identity, IdentityError, verify_token

logger = get_logger(__name__)

OAUTH2_TOKEN_URL = "/api/auth/token"

# auto_error off so missing tokens get the same 401 shape as bad ones
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=OAUTH2_TOKEN_URL, auto_error=False)

MANAGE_RESERVATIONS_MESSAGE = "Open the confirmation link from your email to manage your reservations."


def get_db() -> FileBackedDB:
    """
    Dependency that returns the file-backed DB object.
    Usage:
        db = Depends(get_db)
    """
    return db


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_optional_identity(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Identity]:
    """
    Identity for the presented token, or None when no token was sent.
    A token that is present but invalid is still a 401.
    """
    if not token:
        return None
    try:
        return verify_token(token)
    except (TokenError, IdentityError) as e:
        raise _unauthorized(str(e) or "Could not validate credentials")


async def get_public_viewer(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Identity]:
    """
    For anonymous reads: a token that no longer verifies (an expired reservation
    session, usually) degrades to the anonymous view instead of a 401.
    """
    if not token:
        return None
    try:
        return verify_token(token)
    except (TokenError, IdentityError) as e:
        logger.info("Ignoring unusable token on public read: %s", e)
        return None


async def get_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise _unauthorized("Not authenticated")
    return identity


async def get_reservation_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    """Same as get_identity, with the message shown to visitors managing a reservation."""
    if identity is None:
        raise _unauthorized(MANAGE_RESERVATIONS_MESSAGE)
    return identity


async def get_current_user(identity: Identity = Depends(get_identity), db: FileBackedDB = Depends(get_db)) -> Dict[str, Any]:
    """
    Account row for the caller. Raises 401 if the uid no longer exists.
    """
    user_row = db.get_record("users", "id", identity.uid)
    if not user_row:
        raise _unauthorized("Not authenticated")
    user_row.pop("password_hash", None)
    return user_row
