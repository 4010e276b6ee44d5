# jinnie/api/schemas/auth.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = None


class UserOut(BaseModel):
    id: str
    username: str
    email: EmailStr
    full_name: Optional[str] = None


class EmailLinkRequest(BaseModel):
    # the reservation form does its own validation; keep this loose
    email: str = Field(..., min_length=3)
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")

    model_config = ConfigDict(populate_by_name=True)


class EmailLinkVerify(BaseModel):
    email: str
    code: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, alias="refreshToken")

    model_config = ConfigDict(populate_by_name=True)


class IdentityOut(BaseModel):
    uid: str
    email: Optional[str] = None
    emailVerified: bool = False
    provider: str
    sessionType: str
    authTime: Optional[str] = None
    sessionExpiresAt: Optional[str] = None


class TokenResponse(BaseModel):
    id_token: str
    # OAuth2 clients (the docs "Authorize" button) read access_token
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    user: Optional[IdentityOut] = None
