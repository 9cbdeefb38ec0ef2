from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr


class AdminCreate(BaseModel):
    name: str
    username: str
    password: str
    email: Optional[EmailStr] = None
    role: str = "admin"


class AdminResponse(BaseModel):
    admin_id: str
    name: str
    username: str
    email: Optional[str] = None
    role: str
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AdminProfile(BaseModel):
    admin_id: str
    name: str
    username: str
    email: Optional[str] = None
    role: str
    is_main_admin: bool


class DashboardStats(BaseModel):
    total_pharmacies: int
    total_wholesalers: int
    active_pharmacies: int
    active_wholesalers: int
    pending_pharmacies: int
    pending_wholesalers: int
    pending_approvals: int


class GrowthPoint(BaseModel):
    month: str
    count: int
