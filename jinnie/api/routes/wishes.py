# jinnie/api/routes/wishes.py
"""
Wish endpoints: create, reserve / cancel / purchase, and scrape-url.

Reserve, cancel and purchase all persist through `update_record_if`, conditioned
on the status and version the handler read. Two visitors racing for the same
wish both pass the in-memory transition check, but only the first write matches;
the second gets a 409.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from jinnie.api.deps import get_current_user, get_db, get_identity, get_reservation_identity
from jinnie.api.schemas.wish import PurchaseRequest, ReserveRequest, ScrapeRequest, WishCreate
from jinnie.core.logger import get_logger
from jinnie.core.reservations import ReservationInputError, can_cancel, validate_reservation_input
from jinnie.core.state_machine import InvalidTransition, OptimisticLockError
from jinnie.core.timeutils import isoformat, utcnow
from jinnie.database import ConditionFailed, FileBackedDB
from jinnie.models.wish import AVAILABLE, PURCHASED, RESERVED, Wish
from jinnie.services.identity import Identity
from jinnie.services.url_scraper import InvalidUrlError, ScrapeError, UrlScraper
from jinnie.services.wishlists import recompute_counters

logger = get_logger(__name__)

router = APIRouter(prefix="/api/wishes", tags=["wishes"])

CONFLICT_DETAIL = "This wish is no longer available"

# columns written by a status change
STATE_COLUMNS = (
    "status", "reserved_by", "reserved_by_uid", "reserved_at", "reserved_message", "reserver_name",
    "purchased_by", "purchased_at", "status_history", "version", "updated_at",
)


def get_url_scraper() -> UrlScraper:
    return UrlScraper()


def _load_wish(db: FileBackedDB, wish_id: str) -> Dict[str, Any]:
    row = db.get_record("wishes", "id", wish_id)
    if not row:
        raise HTTPException(status_code=404, detail="Wish not found")
    return row


def _load_wishlist_row(db: FileBackedDB, wish: Wish) -> Dict[str, Any]:
    wishlist = db.get_record("wishlists", "id", wish.wishlist_id) if wish.wishlist_id else None
    if not wishlist:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    return wishlist


def _state_updates(wish: Wish) -> Dict[str, Any]:
    row = wish.to_row()
    return {k: row[k] for k in STATE_COLUMNS}


def _persist(db: FileBackedDB, row: Dict[str, Any], wish: Wish) -> Dict[str, Any]:
    """Write the new state only if status/version are still what we read."""
    expected = {"status": row.get("status") or "", "version": row.get("version") or ""}
    try:
        updated = db.update_record_if("wishes", "id", wish.id, expected, _state_updates(wish))
    except ConditionFailed as cf:
        logger.info("Lost race on wish %s (now %s)", wish.id, cf.current.get("status"))
        raise HTTPException(status_code=409, detail=CONFLICT_DETAIL)
    if not updated:
        raise HTTPException(status_code=404, detail="Wish not found")
    recompute_counters(db, wish.wishlist_id)
    return updated


def _log_transition(wish_id: str):
    def hook(entry: Dict[str, Any]) -> None:
        logger.info("Wish %s: %s -> %s by %s", wish_id, entry["from"], entry["to"], entry.get("actor"))
    return hook


@router.post("", status_code=201)
def create_wish(
    payload: WishCreate = Body(...),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: FileBackedDB = Depends(get_db),
):
    """
    Add a wish to one of the caller's wishlists. New wishes start `available`.
    """
    wishlist = db.get_record("wishlists", "id", payload.wishlist_id)
    if not wishlist:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    if str(wishlist.get("user_id")) != str(current_user["id"]):
        raise HTTPException(status_code=403, detail="Not your wishlist")

    now = utcnow()
    wish = Wish(
        id="",
        title=payload.title.strip(),
        wishlist_id=payload.wishlist_id,
        description=payload.description,
        url=payload.url,
        images=payload.images,
        notes=payload.notes,
        price=payload.price,
        currency=payload.currency,
        priority=payload.priority,
        quantity=payload.quantity,
        created_at=now,
        updated_at=now,
    )
    row = wish.to_row()
    row.pop("id")
    saved = db.create_record("wishes", row, id_field="id")
    recompute_counters(db, payload.wishlist_id)
    return Wish.from_dict(saved).to_dict()


@router.post("/scrape-url")
def scrape_url(
    payload: ScrapeRequest,
    identity: Identity = Depends(get_identity),
    scraper: UrlScraper = Depends(get_url_scraper),
):
    """
    Fetch a product page and pull title/description/price/image out of it.
    """
    try:
        metadata = scraper.scrape(payload.url)
    except InvalidUrlError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScrapeError:
        raise HTTPException(status_code=502, detail="Failed to scrape product")
    body = metadata.to_dict()
    body.pop("url")
    return {"success": True, "metadata": body, "scrapedAt": isoformat(utcnow())}


@router.post("/{wish_id}/reserve")
def reserve_wish(
    wish_id: str,
    payload: ReserveRequest = Body(...),
    identity: Identity = Depends(get_reservation_identity),
    db: FileBackedDB = Depends(get_db),
):
    """
    Reserve an available wish on a public wishlist for the calling identity.
    `reservedBy` is the contact email from the form, `reservedByUid` the caller.
    """
    try:
        request = validate_reservation_input(payload.email, payload.name, payload.message)
    except ReservationInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not identity.email_verified:
        raise HTTPException(status_code=403, detail="Verify your email before reserving")

    row = _load_wish(db, wish_id)
    wish = Wish.from_dict(row)
    wishlist = _load_wishlist_row(db, wish)
    if str(wishlist.get("visibility") or "").lower() != "public":
        raise HTTPException(status_code=403, detail="This wishlist is not shared publicly")
    if str(wishlist.get("user_id") or "") == identity.uid:
        raise HTTPException(status_code=400, detail="You can't reserve your own wish")

    try:
        wish.transition_to(RESERVED, actor=identity.uid, after=_log_transition(wish.id))
    except InvalidTransition:
        raise HTTPException(status_code=409, detail=CONFLICT_DETAIL)

    now = utcnow()
    wish = wish.with_reservation(request.email, identity.uid, now, name=request.name, message=request.message)
    wish.updated_at = now
    _persist(db, row, wish)
    return {"ok": True, "wish": wish.to_dict()}


@router.delete("/{wish_id}/reserve")
def cancel_reservation(
    wish_id: str,
    identity: Identity = Depends(get_reservation_identity),
    db: FileBackedDB = Depends(get_db),
):
    """
    Release a reservation. Only the identity that reserved may cancel (see
    `can_cancel` for the single exception kept for uid-less reservations).
    """
    row = _load_wish(db, wish_id)
    wish = Wish.from_dict(row)
    if wish.status != RESERVED:
        raise HTTPException(status_code=409, detail="This wish is not reserved")
    if not can_cancel(wish, identity.as_caller()):
        raise HTTPException(status_code=403, detail="Only the person who reserved this wish can cancel it")

    try:
        wish.transition_to(AVAILABLE, actor=identity.uid, after=_log_transition(wish.id))
    except InvalidTransition as it:
        raise HTTPException(status_code=409, detail=str(it))

    wish = wish.without_reservation()
    wish.updated_at = utcnow()
    _persist(db, row, wish)
    return {"ok": True, "wish": wish.to_dict()}


@router.post("/{wish_id}/purchase")
def mark_purchased(
    wish_id: str,
    payload: Optional[PurchaseRequest] = Body(None),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: FileBackedDB = Depends(get_db),
):
    """
    Owner-only: a reserved wish was bought. Reservation metadata is cleared and
    the purchaser (default: the reserver's contact) recorded.
    """
    row = _load_wish(db, wish_id)
    wish = Wish.from_dict(row)
    wishlist = _load_wishlist_row(db, wish)
    if str(wishlist.get("user_id")) != str(current_user["id"]):
        raise HTTPException(status_code=403, detail="Only the wishlist owner can mark a wish purchased")

    purchased_by = (payload.purchased_by if payload else None) or wish.reserved_by
    try:
        wish.transition_to(
            PURCHASED,
            actor=str(current_user["id"]),
            expected_version=payload.expected_version if payload else None,
            after=_log_transition(wish.id),
        )
    except InvalidTransition as it:
        raise HTTPException(status_code=400, detail=str(it))
    except OptimisticLockError as ol:
        raise HTTPException(status_code=409, detail=str(ol))

    now = utcnow()
    wish = wish.with_purchase(purchased_by or str(current_user["id"]), now)
    wish.updated_at = now
    _persist(db, row, wish)
    return {"ok": True, "wish": wish.to_dict()}
