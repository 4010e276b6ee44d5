# --- Pydantic schemas for wishlist endpoints ---
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jinnie.models.wishlist import VISIBILITIES


class WishlistCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    visibility: str = Field("private", description="private | friends | public")
    tags: List[str] = Field(default_factory=list)

    @field_validator("visibility", mode="before")
    def _visibility(cls, v):
        v = str(v or "private").strip().lower()
        if v not in VISIBILITIES:
            raise ValueError(f"visibility must be one of {', '.join(VISIBILITIES)}")
        return v


class WishlistOut(BaseModel):
    id: str
    userId: str
    name: str
    description: Optional[str] = None
    visibility: str
    shareToken: Optional[str] = None
    wishCount: int = 0
    reservedCount: int = 0

    model_config = ConfigDict(extra="allow")
