from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from puremeds.core.errors import InvalidInput
from puremeds.models.entities import Product, SupplyChainRecord

PLATFORM_NAME = "PureMeds"


def default_stages(manufacturer: str) -> dict:
    return {
        "raw-material": {"verified": True, "name": "ABC"},
        "Manufacturer": {"verified": True, "name": manufacturer},
        "Quality-testing": {"verified": True, "name": "ABV"},
        "Platform": {"verified": True, "name": PLATFORM_NAME},
        "Customers": {"verified": True, "name": ""},
    }


def supply_chain_to_dict(record: SupplyChainRecord) -> dict:
    return {
        "supply_chain_id": record.supply_chain_id,
        "batch_code": record.batch_code,
        "manufacturer_name": record.manufacturer_name,
        "expiry_date": record.expiry_date.isoformat(),
        "stock_remaining": record.stock_remaining,
        "details": record.stages,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }


def create_supply_chain(db: Session, product: Product) -> SupplyChainRecord:
    record = SupplyChainRecord(
        batch_code=product.batch_code,
        manufacturer_name=product.manufacturer,
        expiry_date=product.expiry_date,
        stock_remaining=product.available_stock,
        stages=default_stages(product.manufacturer),
    )
    db.add(record)
    return record


def get_supply_chain(db: Session, batch_code: str) -> SupplyChainRecord | None:
    return db.execute(
        select(SupplyChainRecord).where(SupplyChainRecord.batch_code == batch_code)
    ).scalar_one_or_none()


def adjust_stock(db: Session, batch_code: str, delta: int) -> SupplyChainRecord | None:
    """Move the batch's remaining stock by ``delta`` (floored at zero); the caller commits."""
    record = get_supply_chain(db, batch_code)
    if record is None:
        return None
    record.stock_remaining = max(0, record.stock_remaining + delta)
    return record


def decrement_stock(db: Session, batch_code: str, quantity: int) -> SupplyChainRecord | None:
    if quantity <= 0:
        raise InvalidInput("Quantity must be a positive integer")

    record = adjust_stock(db, batch_code, -quantity)
    if record is None:
        return None
    db.commit()
    db.refresh(record)
    return record
