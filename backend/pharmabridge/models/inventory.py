from sqlalchemy import Column, String, Integer, ForeignKey, DateTime

from pharmabridge.db.base import Base, utcnow


class PharmacyInventory(Base):
    """
    Quantity of a product a pharmacy has acquired.

    Mutated only by request approval (additive) and by the pharmacy's own
    manual adjustment (absolute set). Never decremented automatically.
    product_id is kept without a foreign key so holdings outlive the
    wholesaler deleting the catalog entry.
    """
    __tablename__ = "pharmacy_inventory"

    pharmacy_id = Column(String(32), ForeignKey("pharmacy.pharmacy_id", ondelete="CASCADE"), primary_key=True)
    product_id = Column(String(32), primary_key=True)
    quantity = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
