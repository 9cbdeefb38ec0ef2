"""Catalog: a wholesaler manages its own products; anyone signed in can compare prices."""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pharmabridge.api.deps import get_current_principal, get_db, get_notifier, require_wholesaler
from pharmabridge.core.permissions import Principal
from pharmabridge.schemas.product import PriceComparison, ProductCreate, ProductResponse, ProductUpdate
from pharmabridge.services import catalog_service
from pharmabridge.services.notification_service import NotificationFanout

router = APIRouter()


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def add_product(
    data: ProductCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_wholesaler),
    notifier: NotificationFanout = Depends(get_notifier),
):
    return catalog_service.add_product(
        db, principal.account_id, data.name, data.price, data.quantity, data.expire_date,
        description=data.description, notifier=notifier,
    )


@router.get("", response_model=List[ProductResponse])
def list_products(db: Session = Depends(get_db), principal: Principal = Depends(require_wholesaler)):
    return catalog_service.list_products(db, principal.account_id)


@router.get("/compare", response_model=List[PriceComparison])
def compare_prices(name: str = "", db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return catalog_service.compare_prices(db, name)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(product_id: str, db: Session = Depends(get_db), principal: Principal = Depends(require_wholesaler)):
    return catalog_service.get_product(db, principal.account_id, product_id)


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: str,
    data: ProductUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_wholesaler),
    notifier: NotificationFanout = Depends(get_notifier),
):
    """Partial update. Price changes notify pharmacies with Pending requests for this product."""
    changes = data.model_dump(exclude_unset=True)
    return catalog_service.update_product(db, principal.account_id, product_id, changes, notifier=notifier)


@router.delete("/{product_id}")
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_wholesaler),
    notifier: NotificationFanout = Depends(get_notifier),
):
    name = catalog_service.delete_product(db, principal.account_id, product_id, notifier=notifier)
    return {"message": f"Product {name} deleted"}
