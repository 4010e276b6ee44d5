# jinnie/models/wish.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
import json

from jinnie.core.state_machine import StateMachine, Hook
from jinnie.core.timeutils import isoformat, parse_datetime

AVAILABLE = "available"
RESERVED = "reserved"
PURCHASED = "purchased"
WISH_STATUSES = (AVAILABLE, RESERVED, PURCHASED)

RESERVATION_FIELDS = ("reserved_by", "reserved_by_uid", "reserved_at", "reserved_message", "reserver_name")
PURCHASE_FIELDS = ("purchased_by", "purchased_at")


def _pick(d: Dict[str, Any], *keys: str) -> Any:
    """First non-blank value among `keys` (snake_case and camelCase spellings)."""
    for k in keys:
        v = d.get(k)
        if v is not None and v != "":
            return v
    return None


def _to_decimal(raw: Any) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    try:
        value = Decimal(str(raw).replace(",", "").strip())
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def _to_int(raw: Any, default: int) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return default


def _to_list(raw: Any) -> List[str]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return [raw]
        raw = parsed
    if isinstance(raw, list):
        return [str(x) for x in raw if x]
    return []


def _opt_str(raw: Any) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


@dataclass
class Wish:
    """
    A single desired item. `from_dict` is the only place that accepts the loose
    wire shapes (snake_case rows, camelCase API payloads); everything else works
    on this canonical form.
    """
    id: str
    title: str
    wishlist_id: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    images: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    price: Optional[Decimal] = None
    currency: str = "USD"
    priority: int = 0
    quantity: int = 1
    status: str = AVAILABLE
    reserved_by: Optional[str] = None
    reserved_by_uid: Optional[str] = None
    reserved_at: Optional[datetime] = None
    reserved_message: Optional[str] = None
    reserver_name: Optional[str] = None
    purchased_by: Optional[str] = None
    purchased_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0
    status_history: List[Dict[str, Any]] = field(default_factory=list)

    ALLOWED_TRANSITIONS = {
        AVAILABLE: [RESERVED],
        RESERVED: [AVAILABLE, PURCHASED],
        PURCHASED: [],
    }

    @property
    def is_reserved(self) -> bool:
        return self.status == RESERVED

    def _make_state_machine(self) -> StateMachine:
        return StateMachine(state=self.status, allowed_transitions=self.ALLOWED_TRANSITIONS,
                            version=self.version, history=list(self.status_history), idempotent=False)

    def transition_to(self, new_status: str, actor: Optional[str] = None, meta: Optional[Dict[str, Any]] = None,
                      expected_version: Optional[int] = None, after: Optional[Hook] = None) -> None:
        """
        Move the status through the state machine. Raises InvalidTransition or
        OptimisticLockError. Only the status/history/version change here; callers
        set or clear the metadata that belongs to the new state.
        """
        sm = self._make_state_machine()
        if after is not None:
            sm.register_after(self.status, new_status, after)
        result = sm.apply(new_status, actor=actor, meta=meta, expected_version=expected_version)
        self.status = result["state"]
        self.status_history = result["history"]
        self.version = int(result["version"])

    # pure helpers used by the client reducer and by the service handlers

    def with_reservation(self, email: str, uid: Optional[str], at: datetime,
                         name: Optional[str] = None, message: Optional[str] = None) -> "Wish":
        return replace(
            self,
            status=RESERVED,
            reserved_by=email,
            reserved_by_uid=uid or None,
            reserved_at=at,
            reserved_message=message or None,
            reserver_name=name or None,
            purchased_by=None,
            purchased_at=None,
        )

    def without_reservation(self) -> "Wish":
        return replace(self, status=AVAILABLE, **{f: None for f in RESERVATION_FIELDS})

    def with_purchase(self, purchased_by: str, at: datetime) -> "Wish":
        cleared = {f: None for f in RESERVATION_FIELDS}
        return replace(self, status=PURCHASED, purchased_by=purchased_by, purchased_at=at, **cleared)

    def check_invariants(self) -> None:
        """Raise ValueError if status and reservation/purchase metadata disagree."""
        if self.status not in WISH_STATUSES:
            raise ValueError(f"Unknown wish status {self.status!r}")
        if (self.status == RESERVED) != bool(self.reserved_by):
            raise ValueError(f"Wish {self.id}: reservedBy must be set iff status is reserved")
        if self.status != RESERVED and any(getattr(self, f) for f in RESERVATION_FIELDS):
            raise ValueError(f"Wish {self.id}: reservation metadata present while {self.status}")
        if (self.status == PURCHASED) != bool(self.purchased_by):
            raise ValueError(f"Wish {self.id}: purchasedBy must be set iff status is purchased")
        if self.status != PURCHASED and self.purchased_at:
            raise ValueError(f"Wish {self.id}: purchasedAt present while {self.status}")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Wish":
        if d is None:
            raise ValueError("Cannot construct Wish from None")
        status = str(_pick(d, "status") or AVAILABLE).strip().lower()
        if status not in WISH_STATUSES:
            raise ValueError(f"Unknown wish status {status!r}")

        history = d.get("status_history") or d.get("statusHistory") or []
        if isinstance(history, str):
            try:
                history = json.loads(history) or []
            except ValueError:
                history = []

        images = _to_list(_pick(d, "images"))
        image_url = _pick(d, "image_url", "imageUrl")
        if image_url and not images:
            images = [str(image_url)]

        return cls(
            id=str(_pick(d, "id", "wish_id", "wishId") or ""),
            title=str(_pick(d, "title", "name") or ""),
            wishlist_id=_opt_str(_pick(d, "wishlist_id", "wishlistId")),
            description=_opt_str(_pick(d, "description")),
            url=_opt_str(_pick(d, "url")),
            images=images,
            notes=_opt_str(_pick(d, "notes")),
            price=_to_decimal(_pick(d, "price")),
            currency=str(_pick(d, "currency") or "USD").upper(),
            priority=_to_int(_pick(d, "priority"), 0),
            quantity=_to_int(_pick(d, "quantity"), 1),
            status=status,
            reserved_by=_opt_str(_pick(d, "reserved_by", "reservedBy")),
            reserved_by_uid=_opt_str(_pick(d, "reserved_by_uid", "reservedByUid")),
            reserved_at=parse_datetime(_pick(d, "reserved_at", "reservedAt")),
            reserved_message=_opt_str(_pick(d, "reserved_message", "reservedMessage")),
            reserver_name=_opt_str(_pick(d, "reserver_name", "reserverName")),
            purchased_by=_opt_str(_pick(d, "purchased_by", "purchasedBy")),
            purchased_at=parse_datetime(_pick(d, "purchased_at", "purchasedAt")),
            created_at=parse_datetime(_pick(d, "created_at", "createdAt")),
            updated_at=parse_datetime(_pick(d, "updated_at", "updatedAt")),
            version=_to_int(_pick(d, "version"), 0),
            status_history=history if isinstance(history, list) else [],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Canonical camelCase wire shape (JSON-serializable)."""
        return {
            "id": self.id,
            "wishlistId": self.wishlist_id,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "images": list(self.images),
            "notes": self.notes,
            "price": float(self.price) if self.price is not None else None,
            "currency": self.currency,
            "priority": self.priority,
            "quantity": self.quantity,
            "status": self.status,
            "reservedBy": self.reserved_by,
            "reservedByUid": self.reserved_by_uid,
            "reservedAt": isoformat(self.reserved_at),
            "reservedMessage": self.reserved_message,
            "reserverName": self.reserver_name,
            "purchasedBy": self.purchased_by,
            "purchasedAt": isoformat(self.purchased_at),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def to_row(self) -> Dict[str, Any]:
        """Flat snake_case row for the file-backed table; lists are stored as JSON."""
        out = asdict(self)
        out["price"] = "" if self.price is None else str(self.price)
        out["images"] = json.dumps(self.images, ensure_ascii=False)
        out["status_history"] = json.dumps(self.status_history or [], ensure_ascii=False)
        for k in ("reserved_at", "purchased_at", "created_at", "updated_at"):
            out[k] = isoformat(getattr(self, k)) or ""
        return {k: ("" if v is None else v) for k, v in out.items()}
