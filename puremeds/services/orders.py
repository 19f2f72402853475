"""Customer orders.

Placing an order takes stock from both the product row and the batch's
supply-chain record; deleting the order puts it back. Line prices come from
the catalog at the time of ordering, not from the client.
"""

from __future__ import annotations

import logging
import secrets
import time
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from puremeds.core.errors import InsufficientStock, PermissionDenied, ResourceNotFound
from puremeds.models.entities import Order, Product
from puremeds.schemas.order import OrderIn
from puremeds.services.audit import append_audit_event
from puremeds.services.supply_chain import adjust_stock

logger = logging.getLogger(__name__)


def _order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{secrets.randbelow(10000)}"


def order_to_dict(order: Order) -> dict:
    return {
        "order_id": order.order_id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "customer_info": order.customer_info,
        "products": order.items,
        "subtotal": float(order.subtotal),
        "shipping": float(order.shipping),
        "total_amount": float(order.total_amount),
        "payment_method": order.payment_method,
        "status": order.status,
        "created_at": order.created_at.isoformat(),
    }


def create_order(db: Session, payload: OrderIn, *, user_id: str, shipping_fee: int | float) -> dict:
    quantities: dict[str, int] = {}
    for item in payload.products:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    # All lines are checked before any stock moves.
    products: dict[str, Product] = {}
    for product_id, quantity in quantities.items():
        product = db.get(Product, product_id, with_for_update=True)
        if product is None:
            raise ResourceNotFound(f"Product with ID {product_id} not found")
        if product.available_stock < quantity:
            raise InsufficientStock(
                f"Insufficient stock for {product.product_name}. "
                f"Available: {product.available_stock}, Requested: {quantity}"
            )
        products[product_id] = product

    lines = []
    subtotal = Decimal("0")
    for product_id, quantity in quantities.items():
        product = products[product_id]
        product.available_stock -= quantity
        adjust_stock(db, product.batch_code, -quantity)
        price = Decimal(str(product.price))
        subtotal += price * quantity
        lines.append(
            {
                "product_id": product.product_id,
                "product_name": product.product_name,
                "batch_code": product.batch_code,
                "quantity": quantity,
                "price": float(price),
            }
        )

    shipping = Decimal(str(payload.shipping if payload.shipping is not None else shipping_fee))
    order = Order(
        order_number=_order_number(),
        user_id=user_id,
        customer_info=payload.customer_info.model_dump(),
        items=lines,
        subtotal=subtotal,
        shipping=shipping,
        total_amount=subtotal + shipping,
        payment_method=payload.payment_method,
        status="pending" if payload.payment_method == "cod" else "confirmed",
    )
    db.add(order)
    db.flush()
    append_audit_event(
        db,
        actor_id=user_id,
        action_type="order.created",
        entity_type="order",
        entity_id=order.order_id,
        payload={"order_number": order.order_number, "items": lines},
    )
    db.commit()
    db.refresh(order)
    logger.info("Order %s placed by %s with %d line(s)", order.order_number, user_id, len(lines))
    return order_to_dict(order)


def list_orders(db: Session, user_id: str) -> list[dict]:
    rows = db.execute(
        select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())
    ).scalars()
    return [order_to_dict(o) for o in rows]


def _owned_order(db: Session, order_id: str, user_id: str, action: str) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise ResourceNotFound("Order not found")
    if order.user_id != user_id:
        raise PermissionDenied(f"You don't have permission to {action} this order")
    return order


def get_order(db: Session, order_id: str, user_id: str) -> dict:
    return order_to_dict(_owned_order(db, order_id, user_id, "view"))


def delete_order(db: Session, order_id: str, user_id: str) -> None:
    order = _owned_order(db, order_id, user_id, "delete")
    order_number = order.order_number

    for line in order.items:
        product = db.get(Product, line["product_id"])
        if product is None:
            continue
        product.available_stock += line["quantity"]
        adjust_stock(db, product.batch_code, line["quantity"])

    append_audit_event(
        db,
        actor_id=user_id,
        action_type="order.deleted",
        entity_type="order",
        entity_id=order.order_id,
        payload={"order_number": order_number},
    )
    db.delete(order)
    db.commit()
    logger.info("Order %s deleted and stock restored", order_number)
