# jinnie/models/product.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class ScrapedProduct:
    """
    Output of the in-page scraper. Every field except `url` may be None, which
    means "could not determine" and never zero or empty. `price` is the raw
    matched text (e.g. "19.99" or "USD 49.99"), not a parsed number.
    """
    url: str
    title: Optional[str] = None
    price: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None

    @property
    def has_product(self) -> bool:
        return bool(self.title)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProductMetadata:
    """Result of the server-side URL scrape."""
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    image: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["price"] = float(self.price) if self.price is not None else None
        return out
