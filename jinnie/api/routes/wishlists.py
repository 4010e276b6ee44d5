# jinnie/api/routes/wishlists.py
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException

from jinnie.api.deps import get_current_user, get_db
from jinnie.api.schemas.wishlist import WishlistCreate, WishlistOut
from jinnie.core.timeutils import utcnow
from jinnie.database import FileBackedDB
from jinnie.models.wishlist import Wishlist
from jinnie.services.wishlists import load_wishlist, new_share_token

router = APIRouter(prefix="/api/wishlists", tags=["wishlists"])


@router.get("", response_model=List[WishlistOut])
def list_my_wishlists(current_user: Dict[str, Any] = Depends(get_current_user), db: FileBackedDB = Depends(get_db)):
    """Wishlists owned by the caller (the extension popup's picker)."""
    rows = db.find_records("wishlists", "user_id", current_user["id"])
    return [Wishlist.from_dict(r).to_dict(include_wishes=False) for r in rows]


@router.post("", status_code=201, response_model=WishlistOut)
def create_wishlist(
    payload: WishlistCreate = Body(...),
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: FileBackedDB = Depends(get_db),
):
    """
    Create a wishlist. Every wishlist gets a share token up front; it only
    resolves publicly while visibility is `public`.
    """
    now = utcnow()
    wishlist = Wishlist(
        id="",
        user_id=str(current_user["id"]),
        name=payload.name,
        description=payload.description,
        visibility=payload.visibility,
        share_token=new_share_token(),
        username=current_user.get("username") or None,
        tags=payload.tags,
        created_at=now,
        updated_at=now,
    )
    row = wishlist.to_row()
    row.pop("id")
    saved = db.create_record("wishlists", row, id_field="id")
    return Wishlist.from_dict(saved).to_dict(include_wishes=False)


@router.get("/{wishlist_id}")
def get_my_wishlist(
    wishlist_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: FileBackedDB = Depends(get_db),
):
    wishlist = load_wishlist(db, wishlist_id)
    if wishlist is None:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    if wishlist.user_id != str(current_user["id"]):
        raise HTTPException(status_code=403, detail="Not your wishlist")
    return wishlist.to_dict()
