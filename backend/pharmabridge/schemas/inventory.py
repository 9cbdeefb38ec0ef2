from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel


class InventoryItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: int
    expire_date: Optional[date] = None
    last_updated: Optional[datetime] = None
    last_price_update: Optional[datetime] = None
    wholesaler_id: Optional[str] = None
    wholesaler_name: Optional[str] = None
    wholesaler_address: Optional[str] = None


class InventoryRecord(BaseModel):
    pharmacy_id: str
    product_id: str
    quantity: int
    last_updated: Optional[datetime] = None

    class Config:
        from_attributes = True


class InventoryUpdate(BaseModel):
    quantity: Optional[Any] = None
