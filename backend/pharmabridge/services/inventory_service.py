"""Pharmacy holdings. Accrual runs inside the approval transaction; manual adjustment is the pharmacy's own absolute set."""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from pharmabridge.core.audit import AuditLog
from pharmabridge.core.exceptions import NotFoundOrUnauthorized, ValidationError
from pharmabridge.core.permissions import Role
from pharmabridge.db.base import utcnow
from pharmabridge.models.account import Wholesaler
from pharmabridge.models.inventory import PharmacyInventory
from pharmabridge.models.product import MAX_QUANTITY, Product
from pharmabridge.models.purchase_request import PurchaseRequest

logger = logging.getLogger(__name__)


def resolve_product(db: Session, product_id: Optional[str], product_name: str, wholesaler_id: str) -> Optional[Product]:
    """Snapshot product id first, then the live (name, wholesaler) pair. None if neither exists."""
    if product_id:
        product = (
            db.query(Product)
            .filter(Product.product_id == product_id, Product.wholesaler_id == wholesaler_id)
            .first()
        )
        if product:
            return product
    return (
        db.query(Product)
        .filter(Product.name == product_name, Product.wholesaler_id == wholesaler_id)
        .order_by(Product.created_at.asc())
        .first()
    )


def accrue(db: Session, pharmacy_id: str, product_id: str, quantity: int) -> None:
    """
    Add `quantity` to the pharmacy's holding of a product, creating the row if absent.

    The increment happens in SQL so two approvals never lose an update.
    Does not commit: the caller owns the transaction.
    """
    updated = (
        db.query(PharmacyInventory)
        .filter(PharmacyInventory.pharmacy_id == pharmacy_id, PharmacyInventory.product_id == product_id)
        .update(
            {
                PharmacyInventory.quantity: PharmacyInventory.quantity + quantity,
                PharmacyInventory.last_updated: utcnow(),
            },
            synchronize_session="fetch",
        )
    )
    if not updated:
        db.add(PharmacyInventory(pharmacy_id=pharmacy_id, product_id=product_id, quantity=quantity))
        db.flush()


def accrue_for_request(db: Session, request: PurchaseRequest) -> Optional[str]:
    """Accrue an approved request. Returns the product id used, or None when the product is gone."""
    product = resolve_product(db, request.product_id, request.product_name, request.wholesaler_id)
    if product is None:
        logger.warning(
            f"Accrual skipped for request {request.request_id}: no product '{request.product_name}' "
            f"at wholesaler {request.wholesaler_id}"
        )
        return None
    accrue(db, request.pharmacy_id, product.product_id, request.quantity)
    logger.info(f"Accrued {request.quantity} x {product.product_id} to pharmacy {request.pharmacy_id}")
    return product.product_id


def get_item(db: Session, pharmacy_id: str, product_id: str) -> PharmacyInventory:
    item = (
        db.query(PharmacyInventory)
        .filter(PharmacyInventory.pharmacy_id == pharmacy_id, PharmacyInventory.product_id == product_id)
        .first()
    )
    if not item:
        raise NotFoundOrUnauthorized("Product not found in your inventory", reason=f"{pharmacy_id}/{product_id}")
    return item


def set_quantity(db: Session, pharmacy_id: str, product_id: str, quantity) -> PharmacyInventory:
    """Manual adjustment: absolute set, not additive."""
    if quantity is None or isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("Quantity must be a non-negative integer")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity cannot exceed {MAX_QUANTITY}")
    item = get_item(db, pharmacy_id, product_id)
    previous = item.quantity
    item.quantity = quantity
    item.last_updated = utcnow()
    db.commit()
    db.refresh(item)
    AuditLog.log_action(
        "adjust", "inventory", product_id, Role.PHARMACY, pharmacy_id, changes={"from": previous, "to": quantity}
    )
    return item


def list_inventory(db: Session, pharmacy_id: str) -> List[dict]:
    rows = (
        db.query(PharmacyInventory, Product, Wholesaler)
        # outer joins: holdings stay listed after the catalog entry is deleted
        .outerjoin(Product, Product.product_id == PharmacyInventory.product_id)
        .outerjoin(Wholesaler, Wholesaler.wholesaler_id == Product.wholesaler_id)
        .filter(PharmacyInventory.pharmacy_id == pharmacy_id)
        .order_by(Product.name.asc(), Product.price.asc())
        .all()
    )
    return [
        {
            "product_id": item.product_id,
            "name": product.name if product else None,
            "description": product.description if product else None,
            "price": product.price if product else None,
            "quantity": item.quantity,
            "expire_date": product.expire_date if product else None,
            "last_updated": item.last_updated,
            "last_price_update": product.last_price_update if product else None,
            "wholesaler_id": wholesaler.wholesaler_id if wholesaler else None,
            "wholesaler_name": wholesaler.name if wholesaler else None,
            "wholesaler_address": wholesaler.address if wholesaler else None,
        }
        for item, product, wholesaler in rows
    ]
