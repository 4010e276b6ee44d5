# jinnie/models/wishlist.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import json

from jinnie.core.timeutils import isoformat, parse_datetime
from jinnie.models.wish import RESERVED, Wish, _opt_str, _pick, _to_int

VISIBILITIES = ("private", "friends", "public")


@dataclass
class Wishlist:
    """
    An ordered collection of wishes owned by one user. `wish_count` and
    `reserved_count` are denormalized counters maintained by the service.
    """
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    visibility: str = "private"
    share_token: Optional[str] = None
    slug: Optional[str] = None
    username: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    wish_count: int = 0
    reserved_count: int = 0
    wishes: List[Wish] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_shareable(self) -> bool:
        return self.visibility == "public" and bool(self.share_token)

    def find_wish(self, wish_id: str) -> Optional[Wish]:
        for w in self.wishes:
            if w.id == str(wish_id):
                return w
        return None

    def count_reserved(self) -> int:
        return sum(1 for w in self.wishes if w.status == RESERVED)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Wishlist":
        """
        Normalize a wishlist payload or table row. Accepts `wishes` or `items`,
        `wish_count`/`item_count`/`wishCount`, snake or camel spelling everywhere.
        Provided counters are reconciled against the embedded wishes by taking the
        larger of the two, so a stale server counter never under-reports.
        """
        if d is None:
            raise ValueError("Cannot construct Wishlist from None")

        raw_wishes = d.get("wishes")
        if not raw_wishes:
            raw_wishes = d.get("items") or []
        wishes = [w if isinstance(w, Wish) else Wish.from_dict(w) for w in raw_wishes if w]

        tags = d.get("tags") or []
        if isinstance(tags, str):
            try:
                tags = json.loads(tags)
            except ValueError:
                tags = [t.strip() for t in tags.split(",")]
        tags = [str(t) for t in tags if t] if isinstance(tags, list) else []

        visibility = str(_pick(d, "visibility") or "private").strip().lower()
        if visibility not in VISIBILITIES:
            raise ValueError(f"Unknown wishlist visibility {visibility!r}")

        provided_wishes = _to_int(_pick(d, "wish_count", "item_count", "wishCount", "itemCount"), 0)
        provided_reserved = _to_int(_pick(d, "reserved_count", "reservedCount"), 0)
        reserved_from_items = sum(1 for w in wishes if w.status == RESERVED)

        return cls(
            id=str(_pick(d, "id", "wishlist_id") or ""),
            user_id=str(_pick(d, "user_id", "userId", "owner_id") or ""),
            name=str(_pick(d, "name", "title") or ""),
            description=_opt_str(_pick(d, "description")),
            visibility=visibility,
            share_token=_opt_str(_pick(d, "share_token", "shareToken")),
            slug=_opt_str(_pick(d, "slug")),
            username=_opt_str(_pick(d, "username")),
            tags=tags,
            wish_count=max(provided_wishes, len(wishes)),
            reserved_count=max(provided_reserved, reserved_from_items),
            wishes=wishes,
            created_at=parse_datetime(_pick(d, "created_at", "createdAt")),
            updated_at=parse_datetime(_pick(d, "updated_at", "updatedAt")),
        )

    def to_dict(self, include_wishes: bool = True) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "visibility": self.visibility,
            "shareToken": self.share_token,
            "slug": self.slug,
            "username": self.username,
            "tags": list(self.tags),
            "wishCount": self.wish_count,
            "reservedCount": self.reserved_count,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if include_wishes:
            out["wishes"] = [w.to_dict() for w in self.wishes]
        return out

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description or "",
            "visibility": self.visibility,
            "share_token": self.share_token or "",
            "slug": self.slug or "",
            "username": self.username or "",
            "tags": json.dumps(self.tags, ensure_ascii=False),
            "wish_count": int(self.wish_count),
            "reserved_count": int(self.reserved_count),
            "created_at": isoformat(self.created_at) or "",
            "updated_at": isoformat(self.updated_at) or "",
        }
