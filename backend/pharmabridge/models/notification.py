"""
Notification rows written by the fanout.

There is no separate dedup key: (recipient_id, message, type, trigger_role)
is the identity, checked before every insert.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Text, Index

from pharmabridge.db.base import Base, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(String(32), primary_key=True)  # NTF-YYYY-XXXXXX
    recipient_id = Column(String(64), nullable=False)
    recipient_role = Column(String(16), nullable=False)  # pharmacy | wholesaler | admin
    message = Column(Text, nullable=False)
    type = Column(String(64), nullable=False)  # request, requestApproved, approve_pharmacy_request, ...
    trigger_role = Column(String(16), nullable=False)  # who caused it
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_notifications_recipient", "recipient_role", "recipient_id"),
    )

    def __repr__(self):
        return f"<Notification {self.notification_id} to={self.recipient_role}:{self.recipient_id} type={self.type}>"
