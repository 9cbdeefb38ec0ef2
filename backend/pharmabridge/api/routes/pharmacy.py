"""Pharmacy: registration, sign-in, profile, inventory, orders and notifications."""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pharmabridge.api.deps import get_db, get_identity_verifier, get_notifier, require_pharmacy
from pharmabridge.core.permissions import Principal, Role
from pharmabridge.schemas.account import (
    FederatedLoginResponse,
    GoogleLoginRequest,
    LoginRequest,
    PasswordChange,
    PharmacyRegister,
    PharmacyResponse,
    TokenResponse,
)
from pharmabridge.schemas.inventory import InventoryItem, InventoryRecord, InventoryUpdate
from pharmabridge.schemas.notification import NotificationResponse
from pharmabridge.schemas.request import OrderResponse, PharmacyDashboard, RequestUpdate
from pharmabridge.services import account_service, inventory_service, notification_service, request_service
from pharmabridge.services.identity_service import GoogleIdentityVerifier
from pharmabridge.services.notification_service import NotificationFanout

router = APIRouter()


@router.post("/register", response_model=PharmacyResponse, status_code=status.HTTP_201_CREATED)
def register(data: PharmacyRegister, db: Session = Depends(get_db), notifier: NotificationFanout = Depends(get_notifier)):
    """New pharmacies wait for admin approval before they can sign in."""
    return account_service.register_pharmacy(
        db, data.name, data.address, data.phone_No, data.username, data.password, notifier=notifier
    )


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    return account_service.login_pharmacy(db, data.username, data.password)


@router.post("/google-login", response_model=FederatedLoginResponse)
def google_login(
    data: GoogleLoginRequest,
    db: Session = Depends(get_db),
    verifier: GoogleIdentityVerifier = Depends(get_identity_verifier),
    notifier: NotificationFanout = Depends(get_notifier),
):
    """First sign-in registers a pending pharmacy and returns no token."""
    return account_service.federated_pharmacy_sign_in(db, data.credential, verifier, notifier=notifier)


@router.get("/me", response_model=PharmacyResponse)
def me(db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return account_service.get_pharmacy_profile(db, principal.account_id)


@router.put("/change-password")
def change_password(data: PasswordChange, db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    account_service.change_password(db, Role.PHARMACY, principal.account_id, data.current_password, data.new_password)
    return {"message": "Password changed successfully"}


@router.get("/dashboard/stats", response_model=PharmacyDashboard)
def dashboard_stats(db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return request_service.pharmacy_dashboard(db, principal.account_id)


@router.get("/orders", response_model=List[OrderResponse])
def orders(db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return request_service.list_orders(db, principal.account_id)


@router.get("/request-updates", response_model=List[RequestUpdate])
def request_updates(db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return request_service.list_request_updates(db, principal.account_id)


@router.patch("/request-updates/{request_id}/read")
def mark_request_update_read(request_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    request_service.mark_request_update_read(db, principal.account_id, request_id)
    return {"message": "Notification marked as read"}


@router.get("/inventory", response_model=List[InventoryItem])
def inventory(db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return inventory_service.list_inventory(db, principal.account_id)


@router.get("/inventory/{product_id}", response_model=InventoryRecord)
def inventory_item(product_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return inventory_service.get_item(db, principal.account_id, product_id)


@router.patch("/inventory/{product_id}", response_model=InventoryRecord)
def set_inventory_quantity(
    product_id: str,
    data: InventoryUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_pharmacy),
):
    """Absolute set of the pharmacy's own count."""
    return inventory_service.set_quantity(db, principal.account_id, product_id, data.quantity)


@router.get("/notifications", response_model=List[NotificationResponse])
def notifications(unread_only: bool = False, db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return notification_service.list_notifications(db, Role.PHARMACY, principal.account_id, unread_only=unread_only)


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(notification_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return notification_service.mark_read(db, Role.PHARMACY, principal.account_id, notification_id)
