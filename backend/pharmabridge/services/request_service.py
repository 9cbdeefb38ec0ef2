"""
Request lifecycle: pharmacy-initiated purchase requests and the wholesaler's decisions.

    create (pharmacy)            -> Pending
    approve (owning wholesaler)  Pending -> Approved   + inventory accrual
    reject (owning wholesaler)   Pending -> Rejected
    cancel (owning wholesaler)   any     -> Pending    (accrual is NOT reversed)

Every transition is a conditional UPDATE on the status the caller observed,
so of two concurrent transitions only one wins; the loser gets Conflict.
Approve runs the status change and the accrual in one transaction, and its
notifications go out through an outbox only after that transaction commits.

A request that is absent and a request owned by another wholesaler produce
the same NotFoundOrUnauthorized, with no state change and no notification.
"""
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from pharmabridge.core.audit import AuditLog
from pharmabridge.core.exceptions import (
    Conflict,
    MarketplaceError,
    NotFoundOrUnauthorized,
    ProductNotFound,
    UpstreamFailure,
    ValidationError,
)
from pharmabridge.core.permissions import Role
from pharmabridge.db.base import utcnow
from pharmabridge.models.account import Wholesaler
from pharmabridge.models.product import MAX_QUANTITY, Product
from pharmabridge.models.purchase_request import PurchaseRequest, RequestStatus
from pharmabridge.services import inventory_service
from pharmabridge.services.identifiers import EntityKind, new_unique_id
from pharmabridge.services.notification_service import (
    NotificationFanout,
    NotificationOutbox,
    NotificationType,
    fanout,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@contextmanager
def _unit_of_work(db: Session, outbox: NotificationOutbox):
    """Commit on success, then deliver the outbox. Roll back and drop the outbox on any failure."""
    try:
        yield
        db.commit()
    except MarketplaceError:
        db.rollback()
        outbox.discard()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        outbox.discard()
        raise UpstreamFailure(reason=f"request transition failed: {e}", original=e)
    outbox.flush(db)


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity cannot exceed {MAX_QUANTITY}")
    return quantity


def _get_owned_request(db: Session, wholesaler_id: str, request_id: str, action: str) -> PurchaseRequest:
    request = db.query(PurchaseRequest).filter(PurchaseRequest.request_id == request_id).first()
    if request is None or request.wholesaler_id != wholesaler_id:
        AuditLog.log_access_denied(
            action, "request", request_id, wholesaler_id,
            "no such request" if request is None else "foreign wholesaler",
        )
        raise NotFoundOrUnauthorized("Request not found or not authorized")
    return request


def _transition(db: Session, request: PurchaseRequest, expected_status: str, values: dict) -> None:
    """UPDATE ... WHERE status = expected_status. Zero rows means someone else moved it first."""
    updated = (
        db.query(PurchaseRequest)
        .filter(
            PurchaseRequest.request_id == request.request_id,
            PurchaseRequest.wholesaler_id == request.wholesaler_id,
            PurchaseRequest.status == expected_status,
        )
        .update(values, synchronize_session="fetch")
    )
    if not updated:
        raise Conflict("Request was changed by another action. Reload and try again.")


def create_request(
    db: Session,
    pharmacy_id: str,
    product_name: str,
    quantity: int,
    wholesaler_id: str,
    notifier: NotificationFanout = fanout,
) -> PurchaseRequest:
    """
    Create a Pending request priced at the product's current price.

    Product name, id and unit price are copied onto the request so later
    catalog edits cannot change what was asked for or what it costs.
    """
    if not product_name or not product_name.strip() or quantity is None or not wholesaler_id:
        raise ValidationError("Product name, quantity, and wholesaler ID are required")
    quantity = _validate_quantity(quantity)
    product_name = product_name.strip()

    product = (
        db.query(Product)
        .filter(Product.name == product_name, Product.wholesaler_id == wholesaler_id)
        .order_by(Product.created_at.asc())
        .first()
    )
    if product is None:
        raise ProductNotFound(reason=f"'{product_name}' at {wholesaler_id}")

    unit_price = Decimal(product.price).quantize(CENT)
    now = utcnow()
    request = PurchaseRequest(
        request_id=new_unique_id(db, PurchaseRequest.request_id, EntityKind.REQUEST),
        pharmacy_id=pharmacy_id,
        wholesaler_id=wholesaler_id,
        product_id=product.product_id,
        product_name=product.name,
        unit_price=unit_price,
        quantity=quantity,
        total_amount=(unit_price * quantity).quantize(CENT),
        status=RequestStatus.PENDING,
        order_date=now.date(),
        request_datetime=now,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    AuditLog.log_action(
        "create", "request", request.request_id, Role.PHARMACY, pharmacy_id,
        changes={"product": product_name, "quantity": quantity, "total_amount": str(request.total_amount)},
    )

    notifier.notify(
        db, Role.WHOLESALER, f"New request for {quantity} units of {product_name}",
        NotificationType.REQUEST, Role.PHARMACY, [wholesaler_id],
    )
    return request


def approve_request(
    db: Session, wholesaler_id: str, request_id: str, notifier: NotificationFanout = fanout
) -> PurchaseRequest:
    """
    Pending -> Approved. Assigns a fresh order ID and accrues the quantity to
    the pharmacy's inventory in the same transaction.

    Re-approving an Approved request is a Conflict, so accrual happens once
    per approval of a Pending request.
    """
    request = _get_owned_request(db, wholesaler_id, request_id, "approve")
    if request.status != RequestStatus.PENDING:
        raise Conflict(f"Request is already {request.status}")

    outbox = NotificationOutbox(notifier)
    with _unit_of_work(db, outbox):
        order_id = new_unique_id(db, PurchaseRequest.order_id, EntityKind.ORDER)
        summary = f"{request.quantity} units of {request.product_name} (Total: {request.total_amount})"
        pharmacy_message = f"Your request for {summary} has been approved. Order ID: {order_id}"
        wholesaler_message = f"You approved a request for {summary} for pharmacy {request.pharmacy_id}."

        _transition(db, request, RequestStatus.PENDING, {
            PurchaseRequest.status: RequestStatus.APPROVED,
            PurchaseRequest.order_id: order_id,
            PurchaseRequest.approved_datetime: utcnow(),
            PurchaseRequest.notification_message: pharmacy_message,
            PurchaseRequest.notification_sent: False,
        })
        inventory_service.accrue_for_request(db, request)

        outbox.add(Role.PHARMACY, pharmacy_message, NotificationType.REQUEST_APPROVED, Role.WHOLESALER, [request.pharmacy_id])
        outbox.add(Role.WHOLESALER, wholesaler_message, NotificationType.REQUEST_APPROVED, Role.WHOLESALER, [wholesaler_id])

    db.refresh(request)
    AuditLog.log_action("approve", "request", request_id, Role.WHOLESALER, wholesaler_id, changes={"order_id": request.order_id})
    return request


def reject_request(
    db: Session, wholesaler_id: str, request_id: str, notifier: NotificationFanout = fanout
) -> PurchaseRequest:
    """Pending -> Rejected. No inventory effect."""
    request = _get_owned_request(db, wholesaler_id, request_id, "reject")
    if request.status != RequestStatus.PENDING:
        raise Conflict(f"Request is already {request.status}")

    outbox = NotificationOutbox(notifier)
    with _unit_of_work(db, outbox):
        summary = f"{request.quantity} units of {request.product_name} (Total: {request.total_amount})"
        pharmacy_message = f"Your request for {summary} has been rejected."
        wholesaler_message = f"You rejected a request for {summary} for pharmacy {request.pharmacy_id}."

        _transition(db, request, RequestStatus.PENDING, {
            PurchaseRequest.status: RequestStatus.REJECTED,
            PurchaseRequest.notification_message: pharmacy_message,
            PurchaseRequest.notification_sent: False,
        })

        outbox.add(Role.PHARMACY, pharmacy_message, NotificationType.REQUEST_REJECTED, Role.WHOLESALER, [request.pharmacy_id])
        outbox.add(Role.WHOLESALER, wholesaler_message, NotificationType.REQUEST_REJECTED, Role.WHOLESALER, [wholesaler_id])

    db.refresh(request)
    AuditLog.log_action("reject", "request", request_id, Role.WHOLESALER, wholesaler_id)
    return request


def cancel_request(
    db: Session, wholesaler_id: str, request_id: str, notifier: NotificationFanout = fanout
) -> PurchaseRequest:
    """
    Any status -> Pending; clears order fields and the request-channel message.

    Inventory already accrued by an earlier approval stays where it is.
    """
    request = _get_owned_request(db, wholesaler_id, request_id, "cancel")
    observed_status = request.status

    outbox = NotificationOutbox(notifier)
    with _unit_of_work(db, outbox):
        _transition(db, request, observed_status, {
            PurchaseRequest.status: RequestStatus.PENDING,
            PurchaseRequest.order_id: None,
            PurchaseRequest.approved_datetime: None,
            PurchaseRequest.notification_message: None,
            PurchaseRequest.notification_sent: False,
        })

    db.refresh(request)
    AuditLog.log_action("cancel", "request", request_id, Role.WHOLESALER, wholesaler_id, changes={"from": observed_status})
    return request


def get_request(
    db: Session, request_id: str, pharmacy_id: Optional[str] = None, wholesaler_id: Optional[str] = None
) -> PurchaseRequest:
    """Point read scoped to one of the two parties on the request."""
    if not pharmacy_id and not wholesaler_id:
        raise NotFoundOrUnauthorized("Request not found")
    q = db.query(PurchaseRequest).options(joinedload(PurchaseRequest.pharmacy)).filter(PurchaseRequest.request_id == request_id)
    if pharmacy_id:
        q = q.filter(PurchaseRequest.pharmacy_id == pharmacy_id)
    if wholesaler_id:
        q = q.filter(PurchaseRequest.wholesaler_id == wholesaler_id)
    request = q.first()
    if request is None:
        raise NotFoundOrUnauthorized("Request not found")
    return request


def list_for_pharmacy(db: Session, pharmacy_id: str) -> List[PurchaseRequest]:
    return (
        db.query(PurchaseRequest)
        .filter(
            PurchaseRequest.pharmacy_id == pharmacy_id,
            PurchaseRequest.status != RequestStatus.NOTIFICATION,
        )
        .order_by(PurchaseRequest.order_date.desc(), PurchaseRequest.request_datetime.desc())
        .all()
    )


def list_for_wholesaler(db: Session, wholesaler_id: str) -> List[PurchaseRequest]:
    return (
        db.query(PurchaseRequest)
        .options(joinedload(PurchaseRequest.pharmacy))
        .filter(PurchaseRequest.wholesaler_id == wholesaler_id)
        .order_by(PurchaseRequest.order_date.desc(), PurchaseRequest.request_datetime.desc())
        .all()
    )


# ==============================================================================
# REQUEST-SCOPED UPDATE CHANNEL (pharmacy side)
# ==============================================================================

_UPDATE_TITLES = {
    RequestStatus.APPROVED: "Request Approved",
    RequestStatus.REJECTED: "Request Rejected",
    RequestStatus.NOTIFICATION: "System Notification",
}


def list_request_updates(db: Session, pharmacy_id: str, limit: int = 20) -> List[dict]:
    rows = (
        db.query(PurchaseRequest)
        .filter(
            PurchaseRequest.pharmacy_id == pharmacy_id,
            (
                PurchaseRequest.status.in_([RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.NOTIFICATION])
                | PurchaseRequest.notification_message.isnot(None)
            ),
        )
        .order_by(PurchaseRequest.request_datetime.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "notification_id": r.request_id,
            "type": "request_update",
            "title": _UPDATE_TITLES.get(r.status, "Request Updated"),
            "message": r.notification_message,
            "created_at": r.approved_datetime or r.request_datetime,
            "is_read": bool(r.notification_sent),
        }
        for r in rows
    ]


def mark_request_update_read(db: Session, pharmacy_id: str, request_id: str) -> None:
    updated = (
        db.query(PurchaseRequest)
        .filter(PurchaseRequest.request_id == request_id, PurchaseRequest.pharmacy_id == pharmacy_id)
        .update({PurchaseRequest.notification_sent: True}, synchronize_session="fetch")
    )
    if not updated:
        db.rollback()
        raise NotFoundOrUnauthorized("Notification not found")
    db.commit()


# ==============================================================================
# PHARMACY ORDER VIEWS
# ==============================================================================

def _orders_query(db: Session, pharmacy_id: str):
    return (
        db.query(PurchaseRequest, Wholesaler)
        .join(Wholesaler, Wholesaler.wholesaler_id == PurchaseRequest.wholesaler_id)
        .filter(
            PurchaseRequest.pharmacy_id == pharmacy_id,
            PurchaseRequest.status == RequestStatus.APPROVED,
            PurchaseRequest.order_id.isnot(None),
        )
        .order_by(PurchaseRequest.approved_datetime.desc())
    )


def _order_row(r: PurchaseRequest, w: Wholesaler) -> dict:
    return {
        "order_id": r.order_id,
        "request_id": r.request_id,
        "product_name": r.product_name,
        "quantity": r.quantity,
        "total_amount": r.total_amount,
        "order_date": r.order_date,
        "approved_datetime": r.approved_datetime,
        "status": r.status,
        "wholesaler_id": w.wholesaler_id,
        "wholesaler_name": w.name,
        "wholesaler_address": w.address,
    }


def list_orders(db: Session, pharmacy_id: str) -> List[dict]:
    return [_order_row(r, w) for r, w in _orders_query(db, pharmacy_id).all()]


def pharmacy_dashboard(db: Session, pharmacy_id: str) -> dict:
    """Counts and spend. Spend sums the snapshot totals, not today's catalog prices."""
    base = db.query(PurchaseRequest).filter(PurchaseRequest.pharmacy_id == pharmacy_id)
    total_orders = base.filter(
        PurchaseRequest.status == RequestStatus.APPROVED, PurchaseRequest.order_id.isnot(None)
    ).count()
    pending_requests = base.filter(PurchaseRequest.status == RequestStatus.PENDING).count()
    total_spent = (
        db.query(func.coalesce(func.sum(PurchaseRequest.total_amount), 0))
        .filter(PurchaseRequest.pharmacy_id == pharmacy_id, PurchaseRequest.status == RequestStatus.APPROVED)
        .scalar()
    )
    return {
        "total_orders": total_orders,
        "pending_requests": pending_requests,
        "total_spent": Decimal(str(total_spent or 0)).quantize(CENT),
        "recent_orders": [_order_row(r, w) for r, w in _orders_query(db, pharmacy_id).limit(5).all()],
    }
