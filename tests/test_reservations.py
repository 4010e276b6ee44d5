import logging
from datetime import datetime, timezone

import pytest

from jinnie.core.reservations import (
    INVALID_EMAIL_MESSAGE,
    MISSING_EMAIL_MESSAGE,
    Caller,
    ReservationInputError,
    apply_reservation,
    can_cancel,
    clear_reservation,
    is_reserved_by,
    validate_reservation_input,
)
from jinnie.models.wish import AVAILABLE, RESERVED, Wish
from jinnie.models.wishlist import Wishlist

AT = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _wishlist(*wishes, reserved_count=None):
    wl = Wishlist(id="l1", user_id="owner", name="Birthday", visibility="public", wishes=list(wishes))
    wl.wish_count = len(wishes)
    wl.reserved_count = wl.count_reserved() if reserved_count is None else reserved_count
    return wl


def test_validate_trims_and_accepts():
    req = validate_reservation_input("  ann@example.com ", "  Ann ", "   ")
    assert req.email == "ann@example.com"
    assert req.name == "Ann"
    assert req.message is None


@pytest.mark.parametrize("email,message", [
    ("", MISSING_EMAIL_MESSAGE),
    ("   ", MISSING_EMAIL_MESSAGE),
    ("ann@example", INVALID_EMAIL_MESSAGE),
    ("ann example.com", INVALID_EMAIL_MESSAGE),
])
def test_validate_rejects_bad_email(email, message):
    with pytest.raises(ReservationInputError, match=message):
        validate_reservation_input(email)


def test_apply_reservation_increments_once():
    wl = _wishlist(Wish(id="w1", title="Lamp"), Wish(id="w2", title="Mug"))
    once = apply_reservation(wl, "w1", "a@b.co", "u1", now=AT)
    twice = apply_reservation(once, "w1", "a@b.co", "u1", now=AT)

    assert once.reserved_count == 1
    assert twice.reserved_count == 1
    w = twice.find_wish("w1")
    assert w.status == RESERVED and w.reserved_by == "a@b.co" and w.reserved_by_uid == "u1"
    # previous record untouched
    assert wl.find_wish("w1").status == AVAILABLE
    assert wl.reserved_count == 0


def test_apply_reservation_unknown_wish_is_noop():
    wl = _wishlist(Wish(id="w1", title="Lamp"))
    assert apply_reservation(wl, "nope", "a@b.co", "u1") is wl


def test_clear_reservation_floors_at_zero_and_is_conditioned():
    reserved = Wish(id="w1", title="Lamp").with_reservation("a@b.co", "u1", AT)
    wl = _wishlist(reserved, reserved_count=0)
    cleared = clear_reservation(wl, "w1")
    assert cleared.reserved_count == 0
    assert cleared.find_wish("w1").status == AVAILABLE
    assert cleared.find_wish("w1").reserved_by is None

    # replaying the same success response changes nothing
    assert clear_reservation(cleared, "w1") is cleared


def test_cancel_requires_matching_uid():
    w = Wish(id="w1", title="Lamp").with_reservation("a@b.co", "u1", AT)
    assert can_cancel(w, Caller(uid="u1"))
    assert not can_cancel(w, Caller(uid="u2", email="a@b.co", email_verified=True))
    assert not can_cancel(w, None)
    assert is_reserved_by(w, Caller(uid="u1"))
    assert not is_reserved_by(w, Caller(uid="u2"))


def test_cancel_email_fallback_only_without_uid(caplog):
    legacy = Wish(id="w1", title="Lamp").with_reservation("Ann@Example.com", None, AT)
    caller = Caller(uid="u5", email="ann@example.com", email_verified=True)

    with caplog.at_level(logging.WARNING, logger="jinnie.core.reservations"):
        assert can_cancel(legacy, caller)
    assert any("email fallback" in r.getMessage() for r in caplog.records)

    assert not can_cancel(legacy, Caller(uid="u5", email="ann@example.com", email_verified=False))
    assert not can_cancel(legacy, Caller(uid="u5", email="other@example.com", email_verified=True))


def test_cancel_fallback_needs_email_shaped_reserved_by():
    legacy = Wish(id="w1", title="Lamp").with_reservation("Ann", None, AT)
    assert not can_cancel(legacy, Caller(uid="u5", email="ann", email_verified=True))


def test_cannot_cancel_available_wish():
    assert not can_cancel(Wish(id="w1", title="Lamp"), Caller(uid="u1"))
