"""
Shared fixtures: in-memory database, accounts, products and an API client.

Environment is set before anything from pharmabridge is imported, since
Settings reads it at import time.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["ALLOWED_HOSTS"] = "testserver,localhost,127.0.0.1"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("MAIN_ADMIN_USERNAME", "superadmin")
os.environ.setdefault("MAIN_ADMIN_PASSWORD", "bootstrap-pass")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pharmabridge.api.deps import get_db, get_identity_verifier
from pharmabridge.core.permissions import Principal, Role
from pharmabridge.core.security import create_access_token, get_password_hash
from pharmabridge.db.base import Base
from pharmabridge.db.init_db import init_db
from pharmabridge.main import app
from pharmabridge.models.account import AccountStatus, Admin, AdminStatus, Pharmacy, Wholesaler
from pharmabridge.models.product import Product
from pharmabridge.services.identifiers import EntityKind, generate_id
from pharmabridge.services.identity_service import VerifiedIdentity
from pharmabridge.services.notification_service import NotificationFanout

PASSWORD = "secret-pass"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return NotificationFanout()


@pytest.fixture
def make_pharmacy(db):
    def _make(username="corner-rx", name="Corner Pharmacy", status=AccountStatus.APPROVED, is_active=True):
        pharmacy = Pharmacy(
            pharmacy_id=generate_id(EntityKind.PHARMACY),
            name=name,
            address="12 High Street",
            phone_no="555-0100",
            username=username,
            hashed_password=get_password_hash(PASSWORD),
            status=status,
            is_active=is_active,
        )
        db.add(pharmacy)
        db.commit()
        db.refresh(pharmacy)
        return pharmacy
    return _make


@pytest.fixture
def make_wholesaler(db):
    def _make(username="medsupply", name="Med Supply Co", status=AccountStatus.APPROVED, is_active=True):
        wholesaler = Wholesaler(
            wholesaler_id=generate_id(EntityKind.WHOLESALER),
            name=name,
            address="1 Depot Road",
            username=username,
            hashed_password=get_password_hash(PASSWORD),
            status=status,
            is_active=is_active,
        )
        db.add(wholesaler)
        db.commit()
        db.refresh(wholesaler)
        return wholesaler
    return _make


@pytest.fixture
def make_admin(db):
    def _make(username="ops-admin", name="Ops Admin"):
        admin = Admin(
            admin_id=generate_id(EntityKind.ADMIN),
            name=name,
            username=username,
            hashed_password=get_password_hash(PASSWORD),
            role=Role.ADMIN,
            status=AdminStatus.ACTIVE,
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        return admin
    return _make


@pytest.fixture
def make_product(db):
    def _make(wholesaler, name="Paracetamol 500mg", price="2.00", quantity=500):
        product = Product(
            product_id=generate_id(EntityKind.PRODUCT),
            wholesaler_id=wholesaler.wholesaler_id,
            name=name,
            description="Tablets, strip of 10",
            price=Decimal(price),
            quantity=quantity,
            expire_date=date(2030, 1, 31),
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make


@pytest.fixture
def pharmacy(make_pharmacy):
    return make_pharmacy()


@pytest.fixture
def wholesaler(make_wholesaler):
    return make_wholesaler()


@pytest.fixture
def product(make_product, wholesaler):
    return make_product(wholesaler)


class StubIdentityVerifier:
    """Stands in for Google's token-info endpoint."""

    def __init__(self, email="owner@sunrise-pharmacy.test", name="Sunrise Pharmacy"):
        self.identity = VerifiedIdentity(email=email, name=name)
        self.credentials = []

    def verify(self, credential):
        self.credentials.append(credential)
        return self.identity


@pytest.fixture
def identity_verifier():
    return StubIdentityVerifier()


@pytest.fixture
def client(session_factory, identity_verifier):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_identity_verifier] = lambda: identity_verifier
    # no context manager: the lifespan would create tables on the default engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(role, account_id, username="user", is_main_admin=False):
    token = create_access_token(Principal(role, account_id, username, is_main_admin).claims())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def pharmacy_headers(pharmacy):
    return auth_headers(Role.PHARMACY, pharmacy.pharmacy_id, pharmacy.username)


@pytest.fixture
def wholesaler_headers(wholesaler):
    return auth_headers(Role.WHOLESALER, wholesaler.wholesaler_id, wholesaler.username)


@pytest.fixture
def auth():
    return auth_headers
