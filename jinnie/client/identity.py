# jinnie/client/identity.py
"""
Client-side identity: which user this browser is signed in as, how (the
ReservationSession record), and a token provider for JinnieClient.

A reservation-only session is checked lazily: `check_session_expiry()` runs
before every action that needs the identity and signs the user out once the
48 hour window is over (Google/Apple sign-ins excepted).
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from jinnie.client.api import ApiError, AuthorizationError, JinnieClient
from jinnie.client.storage import EMAIL_KEY, SESSION_KEY, LocalStore
from jinnie.core.logger import get_logger
from jinnie.core.timeutils import isoformat, parse_datetime, utcnow
from jinnie.models.session import FULL, RESERVATION, ReservationSession

logger = get_logger(__name__)

TOKENS_KEY = "jinnie.auth.tokens"

# refresh a little before the server would reject the token
EXPIRY_SKEW = timedelta(seconds=30)

Listener = Callable[[Optional[Dict[str, Any]]], None]


class ClientIdentity:
    def __init__(self, client: JinnieClient, store: LocalStore):
        self.client = client
        self.store = store
        self._listeners: List[Listener] = []
        if client.token_provider is None:
            client.token_provider = self.get_id_token

    # --- state ---

    @property
    def current_user(self) -> Optional[Dict[str, Any]]:
        tokens = self.store.get(TOKENS_KEY)
        return tokens.get("user") if tokens else None

    @property
    def is_verified(self) -> bool:
        user = self.current_user
        return bool(user and user.get("emailVerified"))

    @property
    def uid(self) -> Optional[str]:
        user = self.current_user
        return user.get("uid") if user else None

    def session(self) -> Optional[ReservationSession]:
        raw = self.store.get(SESSION_KEY)
        if not raw:
            return None
        try:
            return ReservationSession.from_dict(raw)
        except ValueError:
            logger.warning("Dropping unreadable reservation session record")
            self.store.remove(SESSION_KEY)
            return None

    def add_listener(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def _notify(self) -> None:
        user = self.current_user
        for fn in list(self._listeners):
            fn(user)

    # --- sign-in ---

    def _accept(self, bundle: Dict[str, Any]) -> Dict[str, Any]:
        user = bundle.get("user") or {}
        expires_at = utcnow() + timedelta(seconds=int(bundle.get("expires_in") or 0))
        self.store.set(TOKENS_KEY, {
            "idToken": bundle["id_token"],
            "refreshToken": bundle.get("refresh_token"),
            "expiresAt": isoformat(expires_at),
            "user": user,
        })
        return user

    def send_sign_in_link(self, email: str, redirect_url: Optional[str] = None) -> None:
        """Raises ApiError if the link could not be sent."""
        self.client.send_sign_in_link(email, redirect_url)
        self.store.set(EMAIL_KEY, email)

    def complete_sign_in(self, code: str, email: Optional[str] = None) -> Dict[str, Any]:
        """
        Finish an email-link sign-in. The email comes from the argument or from
        the one remembered when the link was sent.
        """
        email = email or self.store.get(EMAIL_KEY)
        if not email:
            raise ApiError("Enter the email address the link was sent to")
        bundle = self.client.complete_sign_in(email, code)
        user = self._accept(bundle)
        session = ReservationSession.start(RESERVATION, email=email, provider=user.get("provider"))
        self.store.set(SESSION_KEY, session.to_dict())
        self.store.remove(EMAIL_KEY)
        logger.info("Reservation session started for uid=%s", user.get("uid"))
        self._notify()
        return user

    def sign_in_with_password(self, username: str, password: str) -> Dict[str, Any]:
        bundle = self.client.login(username, password)
        user = self._accept(bundle)
        session = ReservationSession.start(FULL, email=user.get("email"), provider=user.get("provider"))
        self.store.set(SESSION_KEY, session.to_dict())
        self._notify()
        return user

    def sign_out(self) -> None:
        self.store.remove(TOKENS_KEY, SESSION_KEY)
        self._notify()

    def check_session_expiry(self, now: Optional[datetime] = None) -> bool:
        """Sign out an expired reservation session. Returns True if it did."""
        session = self.session()
        if session is None or not session.is_expired(now):
            return False
        logger.info("Reservation session for %s expired; signing out", session.email)
        self.sign_out()
        return True

    # --- tokens ---

    def get_id_token(self, force_refresh: bool = False) -> Optional[str]:
        tokens = self.store.get(TOKENS_KEY)
        if not tokens:
            return None
        expires_at = parse_datetime(tokens.get("expiresAt"))
        stale = expires_at is None or expires_at - EXPIRY_SKEW <= utcnow()
        if not (force_refresh or stale):
            return tokens["idToken"]
        if not tokens.get("refreshToken"):
            return None if stale else tokens["idToken"]
        try:
            bundle = self.client.refresh(tokens["refreshToken"])
        except AuthorizationError:
            logger.info("Refresh token rejected; signing out")
            self.sign_out()
            return None
        self._accept(bundle)
        return bundle["id_token"]
