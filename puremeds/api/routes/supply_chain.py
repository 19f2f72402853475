from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from puremeds.core.auth import ROLE_ADMIN, ROLE_INVENTORY_MANAGER, AuthUser, require_roles
from puremeds.db.session import get_db
from puremeds.schemas.product import StockDecrementIn
from puremeds.services.supply_chain import decrement_stock, get_supply_chain, supply_chain_to_dict

router = APIRouter()


@router.get("/batch/{batch_code}")
def get_batch_supply_chain(batch_code: str, db: Session = Depends(get_db)) -> dict:
    record = get_supply_chain(db, batch_code)
    if not record:
        raise HTTPException(status_code=404, detail="Supply chain not found for this batch code")
    return supply_chain_to_dict(record)


@router.patch("/batch/{batch_code}/stock")
def update_batch_stock(
    batch_code: str,
    payload: StockDecrementIn,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(ROLE_INVENTORY_MANAGER, ROLE_ADMIN)),
) -> dict:
    record = decrement_stock(db, batch_code, payload.quantity)
    if not record:
        raise HTTPException(status_code=404, detail="Supply chain not found for this batch code")
    return supply_chain_to_dict(record)
