from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from puremeds.core.auth import AuthUser, get_current_user
from puremeds.core.config import settings
from puremeds.db.session import get_db
from puremeds.schemas.order import OrderIn
from puremeds.services.orders import create_order, delete_order, get_order, list_orders

router = APIRouter()


@router.post("", status_code=201)
def place_order(
    payload: OrderIn,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    return create_order(
        db, payload, user_id=current_user.user_id, shipping_fee=settings.order_shipping_fee
    )


@router.get("")
def my_orders(
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    return {"orders": list_orders(db, current_user.user_id)}


@router.get("/{order_id}")
def order_detail(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    return get_order(db, order_id, current_user.user_id)


@router.delete("/{order_id}")
def cancel_order(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    delete_order(db, order_id, current_user.user_id)
    return {"message": "Order deleted successfully"}
