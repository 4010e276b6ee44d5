# jinnie/core/reservations.py
"""
Reservation rules shared by the service and the client.

The client side never mutates a wishlist in place: `apply_reservation` and
`clear_reservation` take the previously observed wishlist and return the next
one, and both are conditioned on the wish's previous status so replaying the
same success response cannot double count `reserved_count`.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional
import logging
import re

from jinnie.core.timeutils import utcnow
from jinnie.models.wish import RESERVED, Wish
from jinnie.models.wishlist import Wishlist

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MISSING_EMAIL_MESSAGE = "Enter your email so the wishlist owner knows who reserved."
INVALID_EMAIL_MESSAGE = "That email looks incorrect. Double-check and try again."


class ReservationInputError(ValueError):
    pass


@dataclass(frozen=True)
class ReservationRequest:
    email: str
    name: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class Caller:
    """The identity presenting a token: stable uid plus the email it verified."""
    uid: Optional[str]
    email: Optional[str] = None
    email_verified: bool = False


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def validate_reservation_input(email: Optional[str], name: Optional[str] = None,
                               message: Optional[str] = None) -> ReservationRequest:
    """Trim the form fields and reject a missing or malformed email."""
    trimmed_email = (email or "").strip()
    if not trimmed_email:
        raise ReservationInputError(MISSING_EMAIL_MESSAGE)
    if not is_valid_email(trimmed_email):
        raise ReservationInputError(INVALID_EMAIL_MESSAGE)
    return ReservationRequest(
        email=trimmed_email,
        name=(name or "").strip() or None,
        message=(message or "").strip() or None,
    )


def _legacy_email_match(wish: Wish, caller: Caller) -> bool:
    """
    Older reservations made through an email link carry no uid. For those only,
    a verified caller whose email equals `reserved_by` (case-insensitive, and
    `reserved_by` must look like an email) may cancel. Every grant is logged.
    """
    if wish.reserved_by_uid:
        return False
    reserved_by = wish.reserved_by or ""
    if "@" not in reserved_by:
        return False
    if not caller.email_verified or not caller.email:
        return False
    if caller.email.strip().lower() != reserved_by.strip().lower():
        return False
    logger.warning(
        "Cancel on wish %s authorized by email fallback (no reserver uid recorded), caller uid=%s",
        wish.id, caller.uid,
    )
    return True


def can_cancel(wish: Wish, caller: Optional[Caller]) -> bool:
    if caller is None or wish.status != RESERVED:
        return False
    if wish.reserved_by_uid:
        return bool(caller.uid) and caller.uid == wish.reserved_by_uid
    return _legacy_email_match(wish, caller)


def is_reserved_by(wish: Wish, caller: Optional[Caller]) -> bool:
    """Whether the viewer should see the cancel action for this wish."""
    if caller is None or wish.status != RESERVED:
        return False
    return bool(caller.uid) and caller.uid == wish.reserved_by_uid


def apply_reservation(wishlist: Wishlist, wish_id: str, email: str, uid: Optional[str],
                      name: Optional[str] = None, message: Optional[str] = None,
                      now: Optional[datetime] = None) -> Wishlist:
    """
    Next wishlist after a successful reserve. `reserved_count` only grows when
    the wish was not already reserved in the previous record.
    """
    previous = wishlist.find_wish(wish_id)
    if previous is None:
        return wishlist
    already_reserved = previous.status == RESERVED
    at = now or utcnow()
    wishes = [
        w.with_reservation(email, uid, at, name=name, message=message) if w.id == previous.id else w
        for w in wishlist.wishes
    ]
    count = wishlist.reserved_count if already_reserved else wishlist.reserved_count + 1
    return replace(wishlist, wishes=wishes, reserved_count=count)


def clear_reservation(wishlist: Wishlist, wish_id: str) -> Wishlist:
    """
    Next wishlist after a successful cancel: the wish goes back to available with
    its reservation metadata cleared, `reserved_count` drops by one (never below
    zero). A wish that was not reserved in the previous record is left alone.
    """
    previous = wishlist.find_wish(wish_id)
    if previous is None or previous.status != RESERVED:
        return wishlist
    wishes = [w.without_reservation() if w.id == previous.id else w for w in wishlist.wishes]
    return replace(wishlist, wishes=wishes, reserved_count=max(wishlist.reserved_count - 1, 0))
