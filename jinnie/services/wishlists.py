# jinnie/services/wishlists.py
"""Loading wishlists with their wishes and keeping the denormalized counters honest."""
import secrets
from typing import List, Optional

from jinnie.core.logger import get_logger
from jinnie.core.timeutils import isoformat, utcnow
from jinnie.database import FileBackedDB
from jinnie.models.wish import RESERVED, Wish
from jinnie.models.wishlist import Wishlist

logger = get_logger(__name__)


def new_share_token() -> str:
    return secrets.token_urlsafe(12)


def load_wishes(db: FileBackedDB, wishlist_id: str) -> List[Wish]:
    return [Wish.from_dict(r) for r in db.find_records("wishes", "wishlist_id", wishlist_id)]


def load_wishlist(db: FileBackedDB, wishlist_id: str, with_wishes: bool = True) -> Optional[Wishlist]:
    row = db.get_record("wishlists", "id", wishlist_id)
    if not row:
        return None
    return _hydrate(db, row, with_wishes)


def load_by_share_token(db: FileBackedDB, share_token: str) -> Optional[Wishlist]:
    if not share_token:
        return None
    row = db.get_record("wishlists", "share_token", share_token)
    if not row:
        return None
    return _hydrate(db, row, True)


def _hydrate(db: FileBackedDB, row, with_wishes: bool) -> Wishlist:
    wishlist = Wishlist.from_dict(row)
    if with_wishes:
        wishlist.wishes = load_wishes(db, wishlist.id)
        # stored counters can lag a crashed write; the rows are the truth
        wishlist.wish_count = len(wishlist.wishes)
        wishlist.reserved_count = wishlist.count_reserved()
    return wishlist


def recompute_counters(db: FileBackedDB, wishlist_id: Optional[str]) -> None:
    """Recount wish_count / reserved_count from the wish rows and store them."""
    if not wishlist_id:
        return
    rows = db.find_records("wishes", "wishlist_id", wishlist_id)
    reserved = sum(1 for r in rows if str(r.get("status") or "").lower() == RESERVED)
    db.update_record(
        "wishlists",
        "id",
        wishlist_id,
        {"wish_count": len(rows), "reserved_count": reserved, "updated_at": isoformat(utcnow())},
    )
    logger.debug("Counters for wishlist %s: %d wishes, %d reserved", wishlist_id, len(rows), reserved)
