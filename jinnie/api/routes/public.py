# jinnie/api/routes/public.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException

from jinnie.api.deps import get_db, get_public_viewer
from jinnie.core.reservations import Caller, is_reserved_by
from jinnie.database import FileBackedDB
from jinnie.models.wish import Wish
from jinnie.services.identity import Identity
from jinnie.services.wishlists import load_by_share_token

router = APIRouter(prefix="/api/public", tags=["public"])

# who reserved or bought a wish is never shown on the shared page
PRIVATE_WISH_FIELDS = (
    "reservedBy", "reservedByUid", "reserverName", "reservedMessage", "purchasedBy",
)


def public_wish(wish: Wish, caller: Optional[Caller]) -> Dict[str, Any]:
    """
    Wish as a share-link visitor sees it. The viewer's own hold echoes back
    their own uid so a client can offer the cancel action; nothing else about
    the reserver leaves the service.
    """
    body = {k: v for k, v in wish.to_dict().items() if k not in PRIVATE_WISH_FIELDS}
    mine = is_reserved_by(wish, caller)
    body["reservedByMe"] = mine
    if mine:
        body["reservedByUid"] = caller.uid
    return body


@router.get("/wishlists/{share_token}")
def get_public_wishlist(
    share_token: str,
    db: FileBackedDB = Depends(get_db),
    identity: Optional[Identity] = Depends(get_public_viewer),
):
    """
    Shared wishlist by share token, with its wishes in order. Each wish carries
    `reservedByMe` so a signed-in visitor sees which holds they can cancel.
    """
    wishlist = load_by_share_token(db, share_token)
    if wishlist is None:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    if not wishlist.is_shareable:
        raise HTTPException(status_code=403, detail="This wishlist is not shared publicly")

    caller = identity.as_caller() if identity else None
    body = wishlist.to_dict(include_wishes=False)
    body["wishes"] = [public_wish(w, caller) for w in wishlist.wishes]
    return body
