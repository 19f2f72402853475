from __future__ import annotations

import logging
import math
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from puremeds.models.entities import Product
from puremeds.services.audit import append_audit_event
from puremeds.services.supply_chain import get_supply_chain

logger = logging.getLogger(__name__)


def product_to_dict(product: Product) -> dict:
    return {
        "product_id": product.product_id,
        "product_name": product.product_name,
        "chemical_name": product.chemical_name,
        "manufacturer": product.manufacturer,
        "price": float(product.price),
        "purpose": product.purpose,
        "side_effects": list(product.side_effects or []),
        "category": product.category,
        "product_image": product.product_image,
        "available_stock": product.available_stock,
        "batch_code": product.batch_code,
        "expiry_date": product.expiry_date.isoformat(),
        "fingerprint": product.fingerprint,
        "ledger_tx_hash": product.ledger_tx_hash,
        "ledger_block_number": product.ledger_block_number,
        "created_at": product.created_at.isoformat() if product.created_at else None,
    }


def _contains_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def list_products(
    db: Session,
    *,
    page: int = 1,
    limit: int = 15,
    category: str | None = None,
    search: str | None = None,
) -> dict:
    filters = []
    if category and category.strip():
        filters.append(Product.category == category.strip())
    if search and search.strip():
        filters.append(Product.product_name.ilike(_contains_pattern(search.strip()), escape="\\"))

    count_stmt = select(func.count()).select_from(Product)
    rows_stmt = select(Product)
    if filters:
        count_stmt = count_stmt.where(*filters)
        rows_stmt = rows_stmt.where(*filters)

    total = db.execute(count_stmt).scalar_one()
    rows = db.execute(
        rows_stmt
        .order_by(Product.created_at.desc(), Product.product_name)
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars()

    return {
        "products": [product_to_dict(p) for p in rows],
        "total_products": total,
        "current_page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def featured_products(db: Session, limit: int = 3) -> list[dict]:
    rows = db.execute(
        select(Product).order_by(Product.created_at.desc()).limit(limit)
    ).scalars()
    return [product_to_dict(p) for p in rows]


def list_categories(db: Session) -> list[str]:
    rows = db.execute(select(Product.category).distinct().order_by(Product.category)).scalars()
    return list(rows)


def get_product(db: Session, product_id: str) -> Product | None:
    return db.get(Product, product_id)


def get_product_by_batch(db: Session, batch_code: str) -> Product | None:
    return db.execute(
        select(Product).where(Product.batch_code == batch_code)
    ).scalar_one_or_none()


def delete_product(db: Session, product_id: str, *, actor_id: str) -> dict | None:
    """Remove a batch from the catalog.

    The ledger entry stays; once the local row is gone, scans of the batch
    report it as not distributed by PureMeds.
    """
    product = db.get(Product, product_id)
    if product is None:
        return None

    removed = product_to_dict(product)
    qr_path = Path(product.qr_code)
    record = get_supply_chain(db, product.batch_code)
    if record is not None:
        db.delete(record)
    append_audit_event(
        db,
        actor_id=actor_id,
        action_type="product.deleted",
        entity_type="product",
        entity_id=product.product_id,
        payload={"batch_code": product.batch_code, "fingerprint": product.fingerprint},
    )
    db.delete(product)
    db.commit()

    try:
        qr_path.unlink(missing_ok=True)
    except OSError as exc:
        logger.error("Could not remove QR artifact %s: %s", qr_path, exc)
    logger.info("Deleted batch %s by %s", removed["batch_code"], actor_id)
    return removed
