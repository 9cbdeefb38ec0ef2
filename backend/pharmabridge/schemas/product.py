from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class ProductCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: Decimal
    quantity: int
    expire_date: date


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: Optional[int] = None
    expire_date: Optional[date] = None


class ProductResponse(BaseModel):
    product_id: str
    wholesaler_id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    quantity: int
    expire_date: Optional[date] = None
    created_at: Optional[datetime] = None
    last_price_update: Optional[datetime] = None

    class Config:
        from_attributes = True


class PriceComparison(BaseModel):
    product_id: str
    product_name: str
    description: Optional[str] = None
    price: Decimal
    quantity: int
    expire_date: Optional[date] = None
    wholesaler_id: str
    wholesaler_name: str
    wholesaler_address: str
    wholesaler_status: str
