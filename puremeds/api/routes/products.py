from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from puremeds.db.session import get_db
from puremeds.services.catalog import (
    featured_products,
    get_product,
    list_categories,
    list_products,
    product_to_dict,
)

router = APIRouter()


@router.get("")
def get_products(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=15, ge=1, le=100),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    return list_products(db, page=page, limit=limit, category=category, search=search)


@router.get("/featured")
def get_featured(db: Session = Depends(get_db)) -> dict:
    return {"products": featured_products(db)}


@router.get("/categories")
def get_categories(db: Session = Depends(get_db)) -> dict:
    return {"categories": list_categories(db)}


@router.get("/{product_id}")
def get_product_detail(product_id: str, db: Session = Depends(get_db)) -> dict:
    product = get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product_to_dict(product)


@router.get("/{product_id}/qr")
def get_product_qr(product_id: str, db: Session = Depends(get_db)) -> FileResponse:
    product = get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    qr_path = Path(product.qr_code)
    if not qr_path.is_file():
        raise HTTPException(status_code=404, detail="QR code artifact not found")
    return FileResponse(qr_path, media_type="image/png", filename=f"{product.batch_code}.png")
