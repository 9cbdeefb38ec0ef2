"""
PurchaseRequest: a pharmacy's ask for a quantity of a named product from one wholesaler.

Status flow: Pending -> Approved | Rejected, Approved -> Pending (wholesaler cancel).
order_id is set iff status == Approved.

Product name, product id and unit price are snapshots taken at creation.
total_amount is fixed then and never recalculated when the catalog changes.
"""
from sqlalchemy import Column, String, Integer, Numeric, Date, DateTime, Boolean, Text, ForeignKey
from sqlalchemy.orm import relationship

from pharmabridge.db.base import Base, utcnow


class RequestStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    # Legacy pseudo-status for system messages on the request channel
    NOTIFICATION = "notification"


class PurchaseRequest(Base):
    __tablename__ = "requests"

    request_id = Column(String(32), primary_key=True)  # REQ-YYYY-XXXXXX
    pharmacy_id = Column(String(32), ForeignKey("pharmacy.pharmacy_id", ondelete="CASCADE"), nullable=False, index=True)
    wholesaler_id = Column(String(32), ForeignKey("wholesalers.wholesaler_id", ondelete="CASCADE"), nullable=False, index=True)
    # Snapshot, not a foreign key: the product may be renamed or deleted later
    product_id = Column(String(32), nullable=True)
    product_name = Column(String(255), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(16), nullable=False, default=RequestStatus.PENDING, index=True)
    order_id = Column(String(32), nullable=True, unique=True)
    order_date = Column(Date, nullable=False)
    request_datetime = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    approved_datetime = Column(DateTime(timezone=True), nullable=True)
    # Request-scoped update channel shown to the pharmacy
    notification_message = Column(Text, nullable=True)
    notification_sent = Column(Boolean, nullable=False, default=False)

    pharmacy = relationship("Pharmacy", backref="requests")
    wholesaler = relationship("Wholesaler", backref="incoming_requests")

    @property
    def pharmacy_name(self):
        return self.pharmacy.name if self.pharmacy else None

    def __repr__(self):
        return f"<PurchaseRequest {self.request_id} status={self.status} order_id={self.order_id}>"
