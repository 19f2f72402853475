from __future__ import annotations

from pydantic import BaseModel, Field


class ProductIn(BaseModel):
    product_name: str = Field(min_length=1)
    chemical_name: str = Field(min_length=1)
    manufacturer: str = Field(min_length=1)
    price: float = Field(gt=0)
    purpose: str = Field(min_length=1)
    side_effects: list[str] = Field(min_length=1)
    category: str = Field(min_length=1)
    product_image: str | None = None
    available_stock: int = Field(gt=0)
    batch_code: str = Field(description="PM-<number>, e.g. PM-12345")
    expiry_date: str = Field(description="ISO date or timestamp; must be in the future")


class StockDecrementIn(BaseModel):
    quantity: int = Field(gt=0)
