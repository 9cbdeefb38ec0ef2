"""
Accounts: pharmacies, wholesalers and admins.

Two independent gates decide whether an account may sign in:
- status: business approval (pending | approved | rejected)
- is_active: administrative kill switch, blocks login regardless of status
"""
from sqlalchemy import Column, String, Boolean, DateTime

from pharmabridge.db.base import Base, utcnow


class AccountStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    ALL = (PENDING, APPROVED, REJECTED)


class AdminStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class Pharmacy(Base):
    __tablename__ = "pharmacy"

    pharmacy_id = Column(String(32), primary_key=True)  # PHA-YYYY-XXXXXX
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=False)
    phone_no = Column(String(64), nullable=False)
    username = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default=AccountStatus.PENDING)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Pharmacy {self.pharmacy_id} status={self.status} active={self.is_active}>"


class Wholesaler(Base):
    __tablename__ = "wholesalers"

    wholesaler_id = Column(String(32), primary_key=True)  # WHO-YYYY-XXXXXX
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=False)
    username = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    # Supplied by the operator at registration, not admin-gated
    status = Column(String(16), nullable=False, default=AccountStatus.APPROVED)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Wholesaler {self.wholesaler_id} status={self.status} active={self.is_active}>"


class Admin(Base):
    __tablename__ = "admins"

    admin_id = Column(String(32), primary_key=True)  # ADM-YYYY-XXXXXX
    name = Column(String(255), nullable=False)
    username = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    role = Column(String(16), nullable=False, default="admin")  # admin | superadmin
    status = Column(String(16), nullable=False, default=AdminStatus.ACTIVE)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Admin {self.admin_id} role={self.role}>"
