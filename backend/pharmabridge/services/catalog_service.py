"""Wholesaler catalog: product CRUD and cross-wholesaler price comparison."""
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session

from pharmabridge.core.audit import AuditLog
from pharmabridge.core.exceptions import NotFoundOrUnauthorized, ValidationError
from pharmabridge.core.permissions import Role
from pharmabridge.db.base import utcnow
from pharmabridge.models.account import Wholesaler
from pharmabridge.models.product import MAX_QUANTITY, Product
from pharmabridge.models.purchase_request import PurchaseRequest, RequestStatus
from pharmabridge.services.identifiers import EntityKind, new_unique_id
from pharmabridge.services.notification_service import NotificationFanout, NotificationType, fanout

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "price", "quantity", "expire_date")


def _money(value, field: str = "Price") -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return amount.quantize(Decimal("0.01"))


def _stock(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("Quantity must be a non-negative integer")
    if value > MAX_QUANTITY:
        raise ValidationError(f"Quantity cannot exceed {MAX_QUANTITY}")
    return value


def add_product(
    db: Session,
    wholesaler_id: str,
    name: str,
    price,
    quantity: int,
    expire_date: Optional[date],
    description: Optional[str] = None,
    notifier: NotificationFanout = fanout,
) -> Product:
    if not name or not name.strip():
        raise ValidationError("Name, price, quantity, and expire_date are required")
    if expire_date is None:
        raise ValidationError("Name, price, quantity, and expire_date are required")

    product = Product(
        product_id=new_unique_id(db, Product.product_id, EntityKind.PRODUCT),
        wholesaler_id=wholesaler_id,
        name=name.strip(),
        description=description,
        price=_money(price),
        quantity=_stock(quantity),
        expire_date=expire_date,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    AuditLog.log_action("create", "product", product.product_id, Role.WHOLESALER, wholesaler_id)

    notifier.notify(
        db, Role.WHOLESALER, f"You added a new product: {product.name}",
        NotificationType.PRODUCT, Role.WHOLESALER, [wholesaler_id],
    )
    return product


def list_products(db: Session, wholesaler_id: str) -> List[Product]:
    return (
        db.query(Product)
        .filter(Product.wholesaler_id == wholesaler_id)
        .order_by(Product.name.asc())
        .all()
    )


def get_product(db: Session, wholesaler_id: str, product_id: str) -> Product:
    product = (
        db.query(Product)
        .filter(Product.product_id == product_id, Product.wholesaler_id == wholesaler_id)
        .first()
    )
    if not product:
        raise NotFoundOrUnauthorized(
            "Product not found or not authorized", reason=f"{product_id} not owned by {wholesaler_id}"
        )
    return product


def update_product(
    db: Session,
    wholesaler_id: str,
    product_id: str,
    changes: dict,
    notifier: NotificationFanout = fanout,
) -> Product:
    """
    Partial update. A price change stamps last_price_update and tells every
    pharmacy with a Pending request for this product at this wholesaler.
    Existing requests keep their snapshot price.
    """
    product = get_product(db, wholesaler_id, product_id)
    old_name, old_price = product.name, product.price

    # validate everything before the product is touched
    values = {}
    if changes.get("name") is not None:
        if not changes["name"].strip():
            raise ValidationError("Name cannot be empty")
        values["name"] = changes["name"].strip()
    if "description" in changes:
        values["description"] = changes["description"]
    if changes.get("quantity") is not None:
        values["quantity"] = _stock(changes["quantity"])
    if changes.get("expire_date") is not None:
        values["expire_date"] = changes["expire_date"]
    new_price = _money(changes["price"]) if changes.get("price") is not None else old_price

    price_changed = new_price != old_price
    if price_changed:
        values["price"] = new_price
        values["last_price_update"] = utcnow()

    for field, value in values.items():
        setattr(product, field, value)

    db.commit()
    db.refresh(product)
    AuditLog.log_action(
        "update", "product", product_id, Role.WHOLESALER, wholesaler_id,
        changes={k: v for k, v in changes.items() if k in EDITABLE_FIELDS},
    )

    notifier.notify(
        db, Role.WHOLESALER, f"You updated your product: {product.name}",
        NotificationType.PRODUCT, Role.WHOLESALER, [wholesaler_id],
    )

    if price_changed:
        pending_pharmacies = [
            row[0]
            for row in db.query(PurchaseRequest.pharmacy_id)
            .filter(
                PurchaseRequest.wholesaler_id == wholesaler_id,
                PurchaseRequest.product_name == old_name,
                PurchaseRequest.status == RequestStatus.PENDING,
            )
            .distinct()
            .all()
        ]
        notifier.notify(
            db, Role.PHARMACY, f"Price for {old_name} changed from {old_price} to {product.price}",
            NotificationType.PRODUCT, Role.WHOLESALER, pending_pharmacies,
        )
    return product


def delete_product(db: Session, wholesaler_id: str, product_id: str, notifier: NotificationFanout = fanout) -> str:
    product = get_product(db, wholesaler_id, product_id)
    name = product.name
    db.delete(product)
    db.commit()
    AuditLog.log_action("delete", "product", product_id, Role.WHOLESALER, wholesaler_id, changes={"name": name})

    notifier.notify(
        db, Role.WHOLESALER, f"You deleted your product: {name}",
        NotificationType.PRODUCT, Role.WHOLESALER, [wholesaler_id],
    )
    return name


def compare_prices(db: Session, name: str) -> List[dict]:
    """Every active wholesaler's offer for products matching `name`, cheapest first."""
    if not name or not name.strip():
        raise ValidationError('Query parameter "name" is required')
    rows = (
        db.query(Product, Wholesaler)
        .join(Wholesaler, Wholesaler.wholesaler_id == Product.wholesaler_id)
        .filter(Product.name.ilike(f"%{name.strip()}%"), Wholesaler.is_active.is_(True))
        .order_by(Product.price.asc())
        .all()
    )
    return [
        {
            "product_id": p.product_id,
            "product_name": p.name,
            "description": p.description,
            "price": p.price,
            "quantity": p.quantity,
            "expire_date": p.expire_date,
            "wholesaler_id": w.wholesaler_id,
            "wholesaler_name": w.name,
            "wholesaler_address": w.address,
            "wholesaler_status": w.status,
        }
        for p, w in rows
    ]
