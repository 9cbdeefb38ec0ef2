"""Wholesaler: self-registration, sign-in, profile and notifications."""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pharmabridge.api.deps import get_db, get_notifier, require_wholesaler
from pharmabridge.core.permissions import Principal, Role
from pharmabridge.schemas.account import (
    LoginRequest,
    PasswordChange,
    TokenResponse,
    WholesalerRegister,
    WholesalerResponse,
)
from pharmabridge.schemas.notification import NotificationResponse
from pharmabridge.services import account_service, notification_service
from pharmabridge.services.notification_service import NotificationFanout

router = APIRouter()


@router.post("/register", response_model=WholesalerResponse, status_code=status.HTTP_201_CREATED)
def register(data: WholesalerRegister, db: Session = Depends(get_db), notifier: NotificationFanout = Depends(get_notifier)):
    return account_service.register_wholesaler(
        db, data.name, data.address, data.username, data.password, data.status, notifier=notifier
    )


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    return account_service.login_wholesaler(db, data.username, data.password)


@router.get("/me", response_model=WholesalerResponse)
def me(db: Session = Depends(get_db), principal: Principal = Depends(require_wholesaler)):
    return account_service.get_wholesaler_profile(db, principal.account_id)


@router.put("/change-password")
def change_password(data: PasswordChange, db: Session = Depends(get_db), principal: Principal = Depends(require_wholesaler)):
    account_service.change_password(db, Role.WHOLESALER, principal.account_id, data.current_password, data.new_password)
    return {"message": "Password changed successfully"}


@router.get("/notifications", response_model=List[NotificationResponse])
def notifications(unread_only: bool = False, db: Session = Depends(get_db), principal: Principal = Depends(require_wholesaler)):
    return notification_service.list_notifications(db, Role.WHOLESALER, principal.account_id, unread_only=unread_only)


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(notification_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_wholesaler)):
    return notification_service.mark_read(db, Role.WHOLESALER, principal.account_id, notification_id)
