# jinnie/api/routes/auth.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm

from jinnie.api.deps import get_db, get_identity
from jinnie.api.schemas.auth import (
    EmailLinkRequest,
    EmailLinkVerify,
    IdentityOut,
    RefreshRequest,
    TokenResponse,
    UserCreate,
    UserOut,
)
from jinnie.core.logger import get_logger
from jinnie.core.security import hash_password, verify_password
from jinnie.core.timeutils import isoformat, utcnow
from jinnie.database import FileBackedDB
from jinnie.models.session import FULL
from jinnie.services import identity as identity_service
from jinnie.services.identity import Identity, IdentityError, InvalidLinkError, RefreshError
from jinnie.services.mailer import MailError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(response: Response, bundle: Dict[str, Any]) -> Dict[str, Any]:
    # refresh cookie for browser flows; id tokens only travel in the Authorization header
    response.set_cookie(key="refresh_token", value=bundle["refresh_token"], httponly=True, samesite="lax")
    return {**bundle, "access_token": bundle["id_token"]}


@router.post("/register", response_model=UserOut)
def register(payload: UserCreate, db: FileBackedDB = Depends(get_db)):
    """
    Create a full account. Email is stored lower-cased and starts unverified.
    An email that already has a user (email-link visitors included) is refused:
    attaching a password to it would hand that uid to whoever posted the form.
    """
    email = payload.email.lower()
    if db.get_record("users", "username", payload.username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already taken")
    if db.get_record("users", "email", email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    row = db.create_record(
        "users",
        {
            "username": payload.username,
            "email": email,
            "email_verified": "0",
            "password_hash": hash_password(payload.password),
            "full_name": payload.full_name or "",
            "provider": identity_service.PASSWORD_PROVIDER,
            "created_at": isoformat(utcnow()),
        },
        id_field="id",
    )
    logger.info("Registered user %s", row.get("id"))
    return {
        "id": str(row.get("id")),
        "username": row.get("username"),
        "email": row.get("email"),
        "full_name": row.get("full_name") or None,
    }


@router.post("/token", response_model=TokenResponse)
def token(response: Response, form_data: OAuth2PasswordRequestForm = Depends(), db: FileBackedDB = Depends(get_db)):
    """
    Password sign-in (OAuth2 form). Issues a `full` session.
    """
    user = db.get_record("users", "username", form_data.username) or db.get_record(
        "users", "email", form_data.username.lower()
    )
    if not user or not user.get("password_hash"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not verify_password(form_data.password, user["password_hash"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    identity = Identity(
        uid=str(user["id"]),
        email=user.get("email") or None,
        email_verified=identity_service.is_user_verified(user),
        provider=identity_service.PASSWORD_PROVIDER,
        session_type=FULL,
        auth_time=utcnow(),
    )
    return _token_response(response, identity_service.issue_tokens(db, identity))


@router.post("/email-link")
def send_email_link(payload: EmailLinkRequest, db: FileBackedDB = Depends(get_db)):
    """
    Send a passwordless sign-in link. The link itself is never returned.
    """
    try:
        identity_service.send_email_link(db, payload.email, payload.redirect_url)
    except IdentityError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MailError:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not send sign-in link")
    return {"ok": True}


@router.post("/email-link/verify", response_model=TokenResponse)
def verify_email_link(payload: EmailLinkVerify, response: Response, db: FileBackedDB = Depends(get_db)):
    """
    Redeem the code from a sign-in link. Returns a `reservation` session whose
    email is verified.
    """
    try:
        bundle = identity_service.complete_email_link(db, payload.email, payload.code)
    except InvalidLinkError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _token_response(response, bundle)


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    response: Response,
    request: Request,
    payload: Optional[RefreshRequest] = Body(None),
    db: FileBackedDB = Depends(get_db),
):
    """
    Rotate tokens. Accepts `{"refresh_token": ...}` or the refresh_token cookie.
    The old refresh token stops working either way.
    """
    token_value = (payload.refresh_token if payload else None) or request.cookies.get("refresh_token")
    if not token_value:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token required")
    try:
        bundle = identity_service.refresh_tokens(db, token_value)
    except RefreshError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return _token_response(response, bundle)


@router.get("/me", response_model=IdentityOut)
def me(identity: Identity = Depends(get_identity)):
    return identity.to_dict()
