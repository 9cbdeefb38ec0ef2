"""Purchase requests: pharmacies create, the owning wholesaler approves, rejects or cancels."""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pharmabridge.api.deps import get_current_principal, get_db, get_notifier, require_pharmacy, require_wholesaler
from pharmabridge.core.permissions import Principal, Role, ensure_role
from pharmabridge.schemas.request import RequestCreate, RequestResponse
from pharmabridge.services import request_service
from pharmabridge.services.notification_service import NotificationFanout

router = APIRouter()


@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    data: RequestCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_pharmacy),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return request_service.create_request(
        db, principal.account_id, data.product_name, data.quantity, data.wholesaler_id, notifier=notifier
    )


@router.get("/pharmacy", response_model=List[RequestResponse])
def pharmacy_requests(db: Session = Depends(get_db), principal: Principal = Depends(require_pharmacy)):
    return request_service.list_for_pharmacy(db, principal.account_id)


@router.get("/wholesaler", response_model=List[RequestResponse])
def wholesaler_requests(db: Session = Depends(get_db), principal: Principal = Depends(require_wholesaler)):
    return request_service.list_for_wholesaler(db, principal.account_id)


@router.get("/{request_id}", response_model=RequestResponse)
def get_request(request_id: str, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    """Visible to the pharmacy that made it and the wholesaler it was sent to."""
    ensure_role(principal, Role.PHARMACY, Role.WHOLESALER)
    if principal.role == Role.PHARMACY:
        return request_service.get_request(db, request_id, pharmacy_id=principal.account_id)
    return request_service.get_request(db, request_id, wholesaler_id=principal.account_id)


@router.patch("/{request_id}/approve", response_model=RequestResponse)
def approve_request(
    request_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_wholesaler),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return request_service.approve_request(db, principal.account_id, request_id, notifier=notifier)


@router.patch("/{request_id}/reject", response_model=RequestResponse)
def reject_request(
    request_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_wholesaler),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return request_service.reject_request(db, principal.account_id, request_id, notifier=notifier)


@router.patch("/{request_id}/cancel", response_model=RequestResponse)
def cancel_request(
    request_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_wholesaler),
    notifier: NotificationFanout = Depends(get_notifier),
):
    """Back to Pending. Inventory accrued by an earlier approval is kept."""
    return request_service.cancel_request(db, principal.account_id, request_id, notifier=notifier)
