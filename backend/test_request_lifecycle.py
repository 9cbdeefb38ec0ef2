"""
Request lifecycle at the service layer.

Covers:
1. Creation: validation, product lookup, name/price snapshot
2. Approve: order ID, inventory accrual, both parties notified
3. Reject / cancel rules and their effect on inventory
4. Ownership: foreign and missing requests look the same
5. Conditional transitions: a stale observer gets Conflict
"""
from decimal import Decimal

import pytest

from pharmabridge.core.exceptions import Conflict, NotFoundOrUnauthorized, ProductNotFound, ValidationError
from pharmabridge.models.inventory import PharmacyInventory
from pharmabridge.models.notification import Notification
from pharmabridge.models.purchase_request import PurchaseRequest, RequestStatus
from pharmabridge.services import catalog_service, request_service
from pharmabridge.services.notification_service import NotificationFanout


def _holding(db, pharmacy, product):
    db.expire_all()
    item = (
        db.query(PharmacyInventory)
        .filter(PharmacyInventory.pharmacy_id == pharmacy.pharmacy_id, PharmacyInventory.product_id == product.product_id)
        .first()
    )
    return item.quantity if item else None


def _notifications(db, recipient_id):
    return db.query(Notification).filter(Notification.recipient_id == recipient_id).all()


# ==== CREATE ====

def test_create_snapshots_price_and_total(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)

    assert req.request_id.startswith("REQ-")
    assert req.status == RequestStatus.PENDING
    assert req.order_id is None
    assert req.product_id == product.product_id
    assert req.unit_price == Decimal("2.00")
    assert req.total_amount == Decimal("20.00")

    # wholesaler is told about the new request
    msgs = [n.message for n in _notifications(db, wholesaler.wholesaler_id)]
    assert msgs == [f"New request for 10 units of {product.name}"]


@pytest.mark.parametrize("quantity", [0, -3, 2.5, "10", True, None, 2**31, 10**20])
def test_create_rejects_bad_quantity(db, pharmacy, wholesaler, product, notifier, quantity):
    with pytest.raises(ValidationError):
        request_service.create_request(db, pharmacy.pharmacy_id, product.name, quantity, wholesaler.wholesaler_id, notifier=notifier)
    assert db.query(PurchaseRequest).count() == 0


def test_create_requires_product_name(db, pharmacy, wholesaler, notifier):
    with pytest.raises(ValidationError):
        request_service.create_request(db, pharmacy.pharmacy_id, "  ", 5, wholesaler.wholesaler_id, notifier=notifier)


def test_create_unknown_product_at_wholesaler(db, pharmacy, make_wholesaler, make_product, notifier):
    stocked = make_wholesaler(username="stocked")
    other = make_wholesaler(username="other")
    make_product(stocked, name="Amoxicillin 250mg")

    # product exists, but not at this wholesaler
    with pytest.raises(ProductNotFound):
        request_service.create_request(db, pharmacy.pharmacy_id, "Amoxicillin 250mg", 5, other.wholesaler_id, notifier=notifier)
    assert db.query(PurchaseRequest).count() == 0
    assert _notifications(db, other.wholesaler_id) == []


# ==== APPROVE ====

def test_end_to_end_approve_accrues_and_survives_price_change(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)

    approved = request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)
    assert approved.status == RequestStatus.APPROVED
    assert approved.order_id.startswith("ORD-")
    assert approved.approved_datetime is not None
    assert _holding(db, pharmacy, product) == 10

    pharmacy_msgs = [n for n in _notifications(db, pharmacy.pharmacy_id) if n.type == "requestApproved"]
    assert len(pharmacy_msgs) == 1
    assert approved.order_id in pharmacy_msgs[0].message
    assert any(n.type == "requestApproved" for n in _notifications(db, wholesaler.wholesaler_id))

    # catalog price change does not touch the snapshot
    catalog_service.update_product(db, wholesaler.wholesaler_id, product.product_id, {"price": Decimal("3.00")}, notifier=notifier)
    db.expire_all()
    stored = db.query(PurchaseRequest).filter(PurchaseRequest.request_id == req.request_id).one()
    assert stored.total_amount == Decimal("20.00")
    assert stored.unit_price == Decimal("2.00")


def test_second_approval_accrues_on_top(db, pharmacy, wholesaler, product, notifier):
    first = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    second = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 4, wholesaler.wholesaler_id, notifier=notifier)

    request_service.approve_request(db, wholesaler.wholesaler_id, first.request_id, notifier=notifier)
    request_service.approve_request(db, wholesaler.wholesaler_id, second.request_id, notifier=notifier)

    assert _holding(db, pharmacy, product) == 14
    db.expire_all()
    order_ids = {r.order_id for r in db.query(PurchaseRequest).all()}
    assert len(order_ids) == 2


def test_reapproval_is_conflict_and_does_not_accrue(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    approved = request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)
    order_id = approved.order_id

    with pytest.raises(Conflict):
        request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)

    assert _holding(db, pharmacy, product) == 10
    db.expire_all()
    assert db.query(PurchaseRequest).filter(PurchaseRequest.request_id == req.request_id).one().order_id == order_id


def test_approve_after_product_deleted_skips_accrual(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 3, wholesaler.wholesaler_id, notifier=notifier)
    catalog_service.delete_product(db, wholesaler.wholesaler_id, product.product_id, notifier=notifier)

    approved = request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)
    assert approved.status == RequestStatus.APPROVED
    assert approved.order_id is not None
    assert db.query(PharmacyInventory).count() == 0


def test_approve_rolls_back_when_accrual_fails(db, pharmacy, wholesaler, product, notifier, monkeypatch):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    before = db.query(Notification).count()

    def boom(*args, **kwargs):
        raise Conflict("simulated storage failure")

    monkeypatch.setattr(request_service.inventory_service, "accrue_for_request", boom)
    with pytest.raises(Conflict):
        request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)

    db.expire_all()
    stored = db.query(PurchaseRequest).filter(PurchaseRequest.request_id == req.request_id).one()
    assert stored.status == RequestStatus.PENDING
    assert stored.order_id is None
    # outbox discarded: no approval notification escaped
    assert db.query(Notification).count() == before


# ==== REJECT / CANCEL ====

def test_reject_pending(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    rejected = request_service.reject_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)

    assert rejected.status == RequestStatus.REJECTED
    assert rejected.order_id is None
    assert db.query(PharmacyInventory).count() == 0
    assert [n.type for n in _notifications(db, pharmacy.pharmacy_id)] == ["requestRejected"]


def test_reject_approved_is_conflict(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)

    with pytest.raises(Conflict):
        request_service.reject_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)


def test_cancel_after_approve_keeps_inventory(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)

    cancelled = request_service.cancel_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)
    assert cancelled.status == RequestStatus.PENDING
    assert cancelled.order_id is None
    assert cancelled.approved_datetime is None
    assert cancelled.notification_message is None
    assert _holding(db, pharmacy, product) == 10

    # approving again is a fresh approval of a Pending request
    again = request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)
    assert again.order_id is not None
    assert _holding(db, pharmacy, product) == 20


def test_cancel_rejected_goes_back_to_pending(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 2, wholesaler.wholesaler_id, notifier=notifier)
    request_service.reject_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)

    assert request_service.cancel_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier).status == RequestStatus.PENDING


# ==== OWNERSHIP ====

@pytest.mark.parametrize("action", ["approve_request", "reject_request", "cancel_request"])
def test_foreign_request_is_not_found_without_side_effects(db, pharmacy, wholesaler, make_wholesaler, product, notifier, action):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    intruder = make_wholesaler(username="intruder")
    before = db.query(Notification).count()

    with pytest.raises(NotFoundOrUnauthorized) as foreign:
        getattr(request_service, action)(db, intruder.wholesaler_id, req.request_id, notifier=notifier)
    with pytest.raises(NotFoundOrUnauthorized) as missing:
        getattr(request_service, action)(db, intruder.wholesaler_id, "REQ-2099-FFFFFF", notifier=notifier)

    # same message whether the request exists or not
    assert foreign.value.message == missing.value.message
    db.expire_all()
    assert db.query(PurchaseRequest).filter(PurchaseRequest.request_id == req.request_id).one().status == RequestStatus.PENDING
    assert db.query(Notification).count() == before
    assert db.query(PharmacyInventory).count() == 0


def test_get_request_scoped_to_parties(db, pharmacy, make_pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 1, wholesaler.wholesaler_id, notifier=notifier)
    other = make_pharmacy(username="other-rx")

    assert request_service.get_request(db, req.request_id, pharmacy_id=pharmacy.pharmacy_id).request_id == req.request_id
    assert request_service.get_request(db, req.request_id, wholesaler_id=wholesaler.wholesaler_id).request_id == req.request_id
    with pytest.raises(NotFoundOrUnauthorized):
        request_service.get_request(db, req.request_id, pharmacy_id=other.pharmacy_id)


# ==== RACES ====

def test_stale_transition_loses(db, pharmacy, wholesaler, product, notifier):
    """Two decisions on the same Pending request: the second observer's conditional update matches nothing."""
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    stale = db.query(PurchaseRequest).filter(PurchaseRequest.request_id == req.request_id).one()

    request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)

    with pytest.raises(Conflict):
        request_service._transition(db, stale, RequestStatus.PENDING, {PurchaseRequest.status: RequestStatus.REJECTED})
    db.rollback()
    assert _holding(db, pharmacy, product) == 10


# ==== PHARMACY VIEWS ====

def test_orders_and_dashboard_use_snapshot_totals(db, pharmacy, wholesaler, product, notifier):
    approved = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 10, wholesaler.wholesaler_id, notifier=notifier)
    request_service.create_request(db, pharmacy.pharmacy_id, product.name, 1, wholesaler.wholesaler_id, notifier=notifier)
    request_service.approve_request(db, wholesaler.wholesaler_id, approved.request_id, notifier=notifier)
    catalog_service.update_product(db, wholesaler.wholesaler_id, product.product_id, {"price": "9.99"}, notifier=notifier)

    orders = request_service.list_orders(db, pharmacy.pharmacy_id)
    assert [o["request_id"] for o in orders] == [approved.request_id]
    assert orders[0]["wholesaler_name"] == wholesaler.name

    stats = request_service.pharmacy_dashboard(db, pharmacy.pharmacy_id)
    assert stats["total_orders"] == 1
    assert stats["pending_requests"] == 1
    assert stats["total_spent"] == Decimal("20.00")


def test_request_updates_channel(db, pharmacy, wholesaler, product, notifier):
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 5, wholesaler.wholesaler_id, notifier=notifier)
    assert request_service.list_request_updates(db, pharmacy.pharmacy_id) == []

    request_service.reject_request(db, wholesaler.wholesaler_id, req.request_id, notifier=notifier)
    updates = request_service.list_request_updates(db, pharmacy.pharmacy_id)
    assert len(updates) == 1
    assert updates[0]["title"] == "Request Rejected"
    assert updates[0]["is_read"] is False

    request_service.mark_request_update_read(db, pharmacy.pharmacy_id, req.request_id)
    assert request_service.list_request_updates(db, pharmacy.pharmacy_id)[0]["is_read"] is True

    with pytest.raises(NotFoundOrUnauthorized):
        request_service.mark_request_update_read(db, "PHA-2099-000000", req.request_id)


def test_unit_of_work_notifications_only_after_commit(db, pharmacy, wholesaler, product):
    """The fanout is called only once the transition has committed."""
    seen = []

    class RecordingFanout(NotificationFanout):
        def notify(self, db, recipient_role, message, type, trigger_role, recipient_ids=()):
            if type == "requestApproved":
                stored = db.query(PurchaseRequest.status).filter(PurchaseRequest.order_id.isnot(None)).scalar()
                seen.append((type, stored))
            return super().notify(db, recipient_role, message, type, trigger_role, recipient_ids)

    recorder = RecordingFanout()
    req = request_service.create_request(db, pharmacy.pharmacy_id, product.name, 1, wholesaler.wholesaler_id, notifier=recorder)
    request_service.approve_request(db, wholesaler.wholesaler_id, req.request_id, notifier=recorder)

    assert ("requestApproved", RequestStatus.APPROVED) in seen
