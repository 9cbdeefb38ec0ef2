from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel


class RequestCreate(BaseModel):
    product_name: str
    # left loose so the service reports bad quantities with its own message
    quantity: Optional[Any] = None
    wholesaler_id: str


class RequestResponse(BaseModel):
    request_id: str
    pharmacy_id: str
    pharmacy_name: Optional[str] = None
    wholesaler_id: str
    product_id: Optional[str] = None
    product_name: str
    unit_price: Decimal
    quantity: int
    total_amount: Decimal
    status: str
    order_id: Optional[str] = None
    order_date: date
    request_datetime: datetime
    approved_datetime: Optional[datetime] = None
    notification_message: Optional[str] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    order_id: str
    request_id: str
    product_name: str
    quantity: int
    total_amount: Decimal
    order_date: date
    approved_datetime: Optional[datetime] = None
    status: str
    wholesaler_id: str
    wholesaler_name: str
    wholesaler_address: str


class RequestUpdate(BaseModel):
    notification_id: str
    type: str
    title: str
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    is_read: bool


class PharmacyDashboard(BaseModel):
    total_orders: int
    pending_requests: int
    total_spent: Decimal
    recent_orders: List[OrderResponse]
