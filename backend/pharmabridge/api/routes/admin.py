"""
Admin: sign-in, onboarding decisions, activation toggles, admin roster and dashboard.

Admin roster endpoints are main-admin only; the rest need any admin.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pharmabridge.api.deps import get_db, get_notifier, require_admin, require_main_admin
from pharmabridge.core.permissions import Principal, Role
from pharmabridge.schemas.account import (
    ActivationUpdate,
    LoginRequest,
    PasswordChange,
    PharmacyResponse,
    TokenResponse,
    WholesalerRegister,
    WholesalerResponse,
)
from pharmabridge.schemas.admin import (
    AdminCreate,
    AdminProfile,
    AdminResponse,
    DashboardStats,
    GrowthPoint,
)
from pharmabridge.schemas.notification import NotificationResponse
from pharmabridge.services import account_service, admin_service, notification_service
from pharmabridge.services.notification_service import NotificationFanout

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    return account_service.login_admin(db, data.username, data.password)


@router.get("/me", response_model=AdminProfile)
def me(db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return admin_service.describe_principal(db, principal)


@router.post("/register", response_model=WholesalerResponse, status_code=status.HTTP_201_CREATED)
def register_wholesaler(
    data: WholesalerRegister,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    notifier: NotificationFanout = Depends(get_notifier),
):
    """Admin registers a wholesaler on its behalf."""
    return account_service.register_wholesaler(
        db, data.name, data.address, data.username, data.password, data.status,
        registered_by=principal, notifier=notifier,
    )


@router.get("/notifications", response_model=List[NotificationResponse])
def notifications(unread_only: bool = False, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return notification_service.list_notifications(db, Role.ADMIN, principal.account_id, unread_only=unread_only)


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(notification_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return notification_service.mark_read(db, Role.ADMIN, principal.account_id, notification_id)


# ==============================================================================
# ADMIN ROSTER (main admin)
# ==============================================================================

@router.post("/admins", response_model=AdminResponse, status_code=status.HTTP_201_CREATED)
def create_admin(data: AdminCreate, db: Session = Depends(get_db), principal: Principal = Depends(require_main_admin)):
    return admin_service.create_admin(db, principal, data.name, data.username, data.password, data.email, data.role)


@router.get("/admins", response_model=List[AdminResponse])
def list_admins(db: Session = Depends(get_db), principal: Principal = Depends(require_main_admin)):
    return admin_service.list_admins(db, principal)


@router.get("/admins/{admin_id}", response_model=AdminResponse)
def get_admin(admin_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    """Main admin sees anyone; other admins only themselves."""
    return admin_service.get_admin(db, principal, admin_id)


@router.delete("/admins/{admin_id}")
def remove_admin(admin_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_main_admin)):
    admin_service.remove_admin(db, principal, admin_id)
    return {"message": "Admin removed successfully"}


@router.post("/change-main-password")
def change_main_password(data: PasswordChange, db: Session = Depends(get_db), principal: Principal = Depends(require_main_admin)):
    admin_service.change_main_admin_password(db, principal, data.current_password, data.new_password)
    return {"message": "Main admin password updated successfully"}


@router.post("/admin/{admin_id}/change-password")
def change_admin_password(
    admin_id: str,
    data: PasswordChange,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Own password for regular admins; any admin's for the main admin."""
    admin_service.change_admin_password(db, principal, admin_id, data.current_password, data.new_password)
    return {"message": "Password changed successfully"}


# ==============================================================================
# PHARMACIES
# ==============================================================================

@router.get("/pharmacies", response_model=List[PharmacyResponse])
def list_pharmacies(status: Optional[str] = None, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return admin_service.list_pharmacies(db, status)


@router.get("/pharmacies/{pharmacy_id}", response_model=PharmacyResponse)
def pharmacy_details(pharmacy_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return admin_service.pharmacy_details(db, pharmacy_id)


@router.patch("/pharmacies/{pharmacy_id}/approve", response_model=PharmacyResponse)
def approve_pharmacy(
    pharmacy_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return account_service.set_pharmacy_status(db, pharmacy_id, True, principal, notifier=notifier)


@router.patch("/pharmacies/{pharmacy_id}/reject", response_model=PharmacyResponse)
def reject_pharmacy(
    pharmacy_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return account_service.set_pharmacy_status(db, pharmacy_id, False, principal, notifier=notifier)


@router.patch("/pharmacies/{pharmacy_id}/activate", response_model=PharmacyResponse)
def toggle_pharmacy(
    pharmacy_id: str,
    data: ActivationUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return account_service.set_active(db, Role.PHARMACY, pharmacy_id, data.is_active, principal, notifier=notifier)


# ==============================================================================
# WHOLESALERS
# ==============================================================================

@router.get("/wholesalers", response_model=List[WholesalerResponse])
def list_wholesalers(db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return admin_service.list_wholesalers(db)


@router.get("/wholesalers/growth", response_model=List[GrowthPoint])
def wholesaler_growth(db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return admin_service.wholesaler_growth(db)


@router.get("/wholesalers/{wholesaler_id}", response_model=WholesalerResponse)
def wholesaler_details(wholesaler_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return admin_service.wholesaler_details(db, wholesaler_id)


@router.patch("/wholesalers/{wholesaler_id}/activate", response_model=WholesalerResponse)
def toggle_wholesaler(
    wholesaler_id: str,
    data: ActivationUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return account_service.set_active(db, Role.WHOLESALER, wholesaler_id, data.is_active, principal, notifier=notifier)


@router.get("/stats", response_model=DashboardStats)
def stats(db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return admin_service.dashboard_stats(db)
