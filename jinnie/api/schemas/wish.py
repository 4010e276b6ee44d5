# jinnie/api/schemas/wish.py
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReserveRequest(BaseModel):
    email: str = Field(..., description="Contact email of the reserver")
    name: Optional[str] = Field(None, max_length=120)
    message: Optional[str] = Field(None, max_length=1000)


class PurchaseRequest(BaseModel):
    purchased_by: Optional[str] = Field(None, alias="purchasedBy", description="Defaults to the reserver contact")
    expected_version: Optional[int] = Field(None, alias="expectedVersion", description="Optimistic-lock expected version")

    model_config = ConfigDict(populate_by_name=True)


class WishCreate(BaseModel):
    wishlist_id: str = Field(..., alias="wishlistId")
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=2000)
    url: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    images: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    priority: int = 0
    quantity: int = Field(1, ge=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("images", mode="before")
    def _single_image(cls, v):
        # the popup sends one image url; the web form sends a list
        if isinstance(v, str):
            return [v] if v else []
        return v or []

    @field_validator("currency", mode="before")
    def _upper_currency(cls, v):
        return (v or "USD").upper()


class ScrapeRequest(BaseModel):
    url: str
