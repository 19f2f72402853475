from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class CustomerInfo(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip: str = Field(min_length=1)
    country: str = Field(min_length=1)


class OrderItemIn(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class OrderIn(BaseModel):
    customer_info: CustomerInfo
    products: list[OrderItemIn] = Field(min_length=1)
    payment_method: Literal["card", "cod"]
    shipping: float | None = Field(default=None, ge=0, description="Defaults to ORDER_SHIPPING_FEE")
