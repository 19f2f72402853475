from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from puremeds.api.deps import get_ledger_client
from puremeds.core.auth import ROLE_ADMIN, ROLE_INVENTORY_MANAGER, AuthUser, require_roles
from puremeds.core.config import settings
from puremeds.db.session import get_db
from puremeds.schemas.product import ProductIn
from puremeds.services.catalog import delete_product, list_products
from puremeds.services.ledger import LedgerClient
from puremeds.services.registration import register_product

router = APIRouter()

ADMIN_PAGE_SIZE = 10


@router.post("/products", status_code=201)
def upload_product(
    payload: ProductIn,
    db: Session = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger_client),
    current_user: AuthUser = Depends(require_roles(ROLE_INVENTORY_MANAGER, ROLE_ADMIN)),
) -> dict:
    return register_product(
        db,
        ledger,
        payload,
        actor_id=current_user.user_id,
        qr_dir=settings.qr_dir,
        ledger_required=settings.ledger_required,
    )


@router.get("/products")
def get_products_admin(
    page: int = Query(default=1, ge=1),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(ROLE_INVENTORY_MANAGER, ROLE_ADMIN)),
) -> dict:
    return list_products(db, page=page, limit=ADMIN_PAGE_SIZE, category=category, search=search)


@router.delete("/products/{product_id}")
def remove_product(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(ROLE_ADMIN)),
) -> dict:
    removed = delete_product(db, product_id, actor_id=current_user.user_id)
    if removed is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product deleted successfully", "product": removed}
