from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class PharmacyRegister(BaseModel):
    name: str
    address: str
    phone_No: str  # field name kept for existing clients
    username: str
    password: str


class WholesalerRegister(BaseModel):
    name: str
    address: str
    username: str
    password: str
    status: str = "approved"


class LoginRequest(BaseModel):
    username: str
    password: str


class GoogleLoginRequest(BaseModel):
    credential: str


class TokenResponse(BaseModel):
    access_token: Optional[str] = None
    token_type: str = "bearer"
    role: Optional[str] = None
    account_id: Optional[str] = None
    name: Optional[str] = None
    is_main_admin: bool = False


class FederatedLoginResponse(TokenResponse):
    status: str
    message: str
    pharmacy_id: str


class PharmacyResponse(BaseModel):
    pharmacy_id: str
    name: str
    address: str
    phone_no: str
    username: str
    status: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WholesalerResponse(BaseModel):
    wholesaler_id: str
    name: str
    address: str
    username: str
    status: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActivationUpdate(BaseModel):
    """No default: an omitted flag is a 400, not a silent toggle."""
    is_active: Optional[bool] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def new_password_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("New password cannot be blank")
        return v
