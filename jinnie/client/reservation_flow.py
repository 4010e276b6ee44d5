# jinnie/client/reservation_flow.py
"""
Reservation flow for a visitor on a shared wishlist.

    controller = ReservationController(client, identity, store, share_token)
    controller.load()
    outcome = controller.submit_reservation(wish_id, email, name, message)

A verified visitor reserves directly. Anyone else is sent a sign-in link and
the request is parked as the pending payload; when the identity comes back
verified the payload is consumed and the visitor is asked to reserve again.
Nothing is submitted automatically.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jinnie.client.api import (
    ApiError,
    AuthorizationError,
    ConflictError,
    JinnieClient,
    ValidationError,
)
from jinnie.client.identity import ClientIdentity
from jinnie.client.storage import EMAIL_KEY, PENDING_PAYLOAD_KEY, LocalStore
from jinnie.core.logger import get_logger
from jinnie.core.reservations import (
    Caller,
    ReservationInputError,
    apply_reservation,
    clear_reservation,
    is_reserved_by,
    validate_reservation_input,
)
from jinnie.models.wish import Wish
from jinnie.models.wishlist import Wishlist

logger = get_logger(__name__)

CONFLICT_MESSAGE = "Someone just reserved this wish. Pick another item."
RESERVE_FAILED_MESSAGE = "Something went wrong while reserving. Try again."
MANAGE_MESSAGE = "Open the confirmation link from your email to manage your reservations."
CANCEL_FAILED_MESSAGE = "We couldn't cancel that reservation. Please try again."
LINK_FAILED_MESSAGE = "We couldn't send the confirmation link. Please double-check your email and try again."
LINK_SENT_MESSAGE = "Check your email for a link to confirm your reservation."
VERIFIED_BANNER = "Email verified. Reserve the item again to finish the hold."

RESERVED = "reserved"
PENDING = "pending_verification"
CANCELLED = "cancelled"
CONFLICT = "conflict"
INVALID = "invalid"
UNAUTHORIZED = "unauthorized"
FAILED = "failed"


class ReservationInFlight(RuntimeError):
    """submit_reservation was called while another reserve was still running."""


@dataclass
class ReservationOutcome:
    status: str
    message: str
    wish_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (RESERVED, PENDING, CANCELLED)


class ReservationController:
    def __init__(self, client: JinnieClient, identity: ClientIdentity, store: LocalStore, share_token: str,
                 redirect_url: Optional[str] = None):
        self.client = client
        self.identity = identity
        self.store = store
        self.share_token = share_token
        self.redirect_url = redirect_url
        self.wishlist: Optional[Wishlist] = None
        self.submitting = False
        self.banner: Optional[str] = None
        identity.add_listener(self.on_identity_changed)

    # --- loading ---

    def load(self) -> Wishlist:
        """
        Fetch the shared wishlist. NotFoundError / AuthorizationError propagate.
        A visitor landing here from the emailed link is already signed in, so
        the pending payload is checked on every load, not only on sign-in.
        """
        self.identity.check_session_expiry()
        self.on_identity_changed(self.identity.current_user)
        self.wishlist = self.client.get_public_wishlist(self.share_token)
        return self.wishlist

    def _refresh_quietly(self) -> None:
        try:
            self.load()
        except ApiError as e:
            logger.warning("Could not refresh wishlist %s: %s", self.share_token, e)

    def _caller(self) -> Optional[Caller]:
        user = self.identity.current_user
        if not user:
            return None
        return Caller(uid=user.get("uid"), email=user.get("email"), email_verified=bool(user.get("emailVerified")))

    def _title(self, wish_id: str) -> str:
        wish = self.wishlist.find_wish(wish_id) if self.wishlist else None
        return wish.title if wish else "this wish"

    def reserved_by_me(self, wish: Wish) -> bool:
        return is_reserved_by(wish, self._caller())

    # --- identity callbacks ---

    def pending_payload(self) -> Optional[Dict[str, Any]]:
        payload = self.store.get(PENDING_PAYLOAD_KEY)
        return payload if isinstance(payload, dict) else None

    def on_identity_changed(self, user: Optional[Dict[str, Any]]) -> None:
        """
        Consume a pending payload for this wishlist once the visitor is verified.
        The reservation is not resubmitted; the banner asks for another click.
        """
        if not user or not user.get("emailVerified"):
            return
        payload = self.pending_payload()
        if not payload or payload.get("shareToken") != self.share_token:
            return
        self.store.remove(PENDING_PAYLOAD_KEY)
        self.banner = VERIFIED_BANNER
        logger.info("Pending reservation for wish %s consumed after verification", payload.get("wishId"))

    # --- reserve / cancel ---

    def submit_reservation(self, wish_id: str, email: str, name: Optional[str] = None,
                           message: Optional[str] = None) -> ReservationOutcome:
        if self.submitting:
            raise ReservationInFlight("A reservation is already being submitted")
        self.submitting = True
        try:
            return self._submit(wish_id, email, name, message)
        finally:
            self.submitting = False

    def _submit(self, wish_id: str, email: str, name: Optional[str], message: Optional[str]) -> ReservationOutcome:
        try:
            request = validate_reservation_input(email, name, message)
        except ReservationInputError as e:
            return ReservationOutcome(INVALID, str(e), wish_id)

        self.identity.check_session_expiry()
        if not self.identity.is_verified:
            return self._request_verification(wish_id, request.email)

        try:
            wish = self.client.reserve_wish(wish_id, request.email, request.name, request.message)
        except ConflictError:
            self._refresh_quietly()
            return ReservationOutcome(CONFLICT, CONFLICT_MESSAGE, wish_id)
        except AuthorizationError as e:
            if e.status_code == 401:
                return ReservationOutcome(UNAUTHORIZED, MANAGE_MESSAGE, wish_id)
            return ReservationOutcome(FAILED, e.message or RESERVE_FAILED_MESSAGE, wish_id)
        except ValidationError as e:
            return ReservationOutcome(INVALID, e.message, wish_id)
        except ApiError as e:
            logger.warning("Reserve of wish %s failed: %s", wish_id, e)
            return ReservationOutcome(FAILED, RESERVE_FAILED_MESSAGE, wish_id)

        self.store.set(EMAIL_KEY, request.email)
        if self.wishlist is not None:
            self.wishlist = apply_reservation(
                self.wishlist, wish.id, request.email, wish.reserved_by_uid or self.identity.uid,
                name=request.name, message=request.message, now=wish.reserved_at,
            )
        self.banner = None
        return ReservationOutcome(RESERVED, f'Reserved "{wish.title}". Your reservation is confirmed.', wish_id)

    def _request_verification(self, wish_id: str, email: str) -> ReservationOutcome:
        self.store.set(PENDING_PAYLOAD_KEY, {"shareToken": self.share_token, "wishId": wish_id, "email": email})
        try:
            self.identity.send_sign_in_link(email, self.redirect_url)
        except ApiError as e:
            logger.warning("Sign-in link for %s failed: %s", email, e)
            self.store.remove(PENDING_PAYLOAD_KEY)
            return ReservationOutcome(FAILED, LINK_FAILED_MESSAGE, wish_id)
        return ReservationOutcome(PENDING, LINK_SENT_MESSAGE, wish_id)

    def cancel_reservation(self, wish_id: str) -> ReservationOutcome:
        if self.identity.check_session_expiry() or self.identity.current_user is None:
            return ReservationOutcome(UNAUTHORIZED, MANAGE_MESSAGE, wish_id)

        title = self._title(wish_id)
        try:
            self.client.cancel_reservation(wish_id)
        except AuthorizationError as e:
            if e.status_code == 401:
                return ReservationOutcome(UNAUTHORIZED, MANAGE_MESSAGE, wish_id)
            return ReservationOutcome(FAILED, CANCEL_FAILED_MESSAGE, wish_id)
        except ConflictError:
            self._refresh_quietly()
            return ReservationOutcome(CONFLICT, CANCEL_FAILED_MESSAGE, wish_id)
        except ApiError as e:
            logger.warning("Cancel of wish %s failed: %s", wish_id, e)
            return ReservationOutcome(FAILED, CANCEL_FAILED_MESSAGE, wish_id)

        if self.wishlist is not None:
            self.wishlist = clear_reservation(self.wishlist, wish_id)
        self._refresh_quietly()
        return ReservationOutcome(CANCELLED, f'Cancelled reservation for "{title}".', wish_id)
