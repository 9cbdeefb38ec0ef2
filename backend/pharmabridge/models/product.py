from sqlalchemy import Column, String, ForeignKey, Numeric, Integer, Date, DateTime, Text
from sqlalchemy.orm import relationship

from pharmabridge.db.base import Base, utcnow

# upper bound of the Integer quantity columns
MAX_QUANTITY = 2**31 - 1


class Product(Base):
    """
    Catalog entry owned by exactly one wholesaler.

    Names are not unique across wholesalers; identical names are what price
    comparison lines up.
    """
    __tablename__ = "products"

    product_id = Column(String(32), primary_key=True)  # PROD-YYYY-XXXXXX
    wholesaler_id = Column(String(32), ForeignKey("wholesalers.wholesaler_id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    expire_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_price_update = Column(DateTime(timezone=True), nullable=True)

    wholesaler = relationship("Wholesaler", backref="products")
