from datetime import datetime, timezone
from decimal import Decimal

import pytest

from jinnie.core.state_machine import InvalidTransition
from jinnie.models.wish import AVAILABLE, PURCHASED, RESERVED, Wish
from jinnie.models.wishlist import Wishlist

AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_from_dict_accepts_camel_and_snake_case():
    camel = Wish.from_dict({
        "id": "w1", "title": "Lamp", "status": "reserved", "reservedBy": "a@b.co",
        "reservedByUid": "u1", "reservedAt": "2024-05-01T12:00:00Z", "price": "1,299.50",
    })
    snake = Wish.from_dict({
        "id": "w1", "title": "Lamp", "status": "reserved", "reserved_by": "a@b.co",
        "reserved_by_uid": "u1", "reserved_at": "2024-05-01 12:00:00", "price": 1299.5,
    })
    assert camel.reserved_by == snake.reserved_by == "a@b.co"
    assert camel.reserved_by_uid == snake.reserved_by_uid == "u1"
    assert camel.reserved_at == snake.reserved_at == AT
    assert camel.price == snake.price == Decimal("1299.5")
    assert camel.currency == "USD"


def test_from_dict_image_url_and_unknown_status():
    w = Wish.from_dict({"id": "w2", "title": "Mug", "image_url": "http://img/x.png"})
    assert w.images == ["http://img/x.png"]
    with pytest.raises(ValueError):
        Wish.from_dict({"id": "w3", "title": "Bad", "status": "lost"})


def test_table_row_round_trips_through_from_dict():
    w = Wish(id="w1", title="Lamp", price=Decimal("19.99"), images=["a", "b"]).with_reservation("a@b.co", "u1", AT)
    again = Wish.from_dict(w.to_row())
    assert again.images == ["a", "b"]
    assert again.reserved_at == AT
    assert again.price == Decimal("19.99")


def test_reservation_helpers_keep_invariants():
    w = Wish(id="w1", title="Lamp")
    w.check_invariants()

    reserved = w.with_reservation("a@b.co", "u1", AT, name="Ann", message="Happy birthday")
    assert reserved.status == RESERVED
    reserved.check_invariants()

    back = reserved.without_reservation()
    assert back.status == AVAILABLE
    assert back.reserved_by is None and back.reserver_name is None and back.reserved_message is None
    back.check_invariants()

    bought = reserved.with_purchase("a@b.co", AT)
    assert bought.status == PURCHASED
    assert bought.reserved_by is None
    bought.check_invariants()


def test_check_invariants_rejects_mismatch():
    with pytest.raises(ValueError):
        Wish(id="w1", title="Lamp", status=RESERVED).check_invariants()
    with pytest.raises(ValueError):
        Wish(id="w1", title="Lamp", status=AVAILABLE, reserved_by="a@b.co").check_invariants()
    with pytest.raises(ValueError):
        Wish(id="w1", title="Lamp", status=AVAILABLE, purchased_at=AT).check_invariants()


def test_transition_to_follows_allowed_moves():
    w = Wish(id="w1", title="Lamp")
    w.transition_to(RESERVED, actor="u1")
    assert w.status == RESERVED and w.version == 1
    with pytest.raises(InvalidTransition):
        w.transition_to(RESERVED)
    w.transition_to(PURCHASED)
    with pytest.raises(InvalidTransition):
        w.transition_to(AVAILABLE)
    assert [h["to"] for h in w.status_history] == [RESERVED, PURCHASED]


def test_transition_after_hook_receives_entry():
    seen = []
    w = Wish(id="w1", title="Lamp")
    w.transition_to(RESERVED, actor="u9", after=seen.append)
    assert seen[0]["actor"] == "u9"


def test_wishlist_counts_reconcile_with_items():
    wl = Wishlist.from_dict({
        "id": "l1", "userId": "o1", "name": "Birthday", "visibility": "public",
        "item_count": 1, "reservedCount": 0,
        "items": [
            {"id": "a", "title": "A", "status": "reserved", "reservedBy": "x@y.co"},
            {"id": "b", "title": "B"},
        ],
    })
    assert wl.wish_count == 2
    assert wl.reserved_count == 1
    assert wl.find_wish("b").title == "B"


def test_wishlist_provided_counter_wins_when_larger():
    wl = Wishlist.from_dict({"id": "l1", "user_id": "o1", "name": "N", "wish_count": "5", "reserved_count": "3"})
    assert wl.wish_count == 5
    assert wl.reserved_count == 3


def test_wishlist_rejects_unknown_visibility():
    with pytest.raises(ValueError):
        Wishlist.from_dict({"id": "l1", "user_id": "o1", "name": "N", "visibility": "secret"})


def test_wishlist_tags_from_row():
    wl = Wishlist.from_dict({"id": "l1", "user_id": "o1", "name": "N", "tags": '["tech", "books"]'})
    assert wl.tags == ["tech", "books"]
    assert Wishlist.from_dict(wl.to_row()).tags == ["tech", "books"]
