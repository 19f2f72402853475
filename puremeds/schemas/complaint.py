from __future__ import annotations

from pydantic import BaseModel, Field


class ComplaintIn(BaseModel):
    medicine_name: str = Field(min_length=1)
    medicine_dose: str = Field(min_length=1)
    manufacturer: str = Field(min_length=1)
    batch_code: str = Field(min_length=1)
    manufacturer_date: str = Field(min_length=1)
    expiry_date: str = Field(min_length=1)
    store: str = Field(min_length=1)
    city: str = Field(min_length=1)
    description: str = Field(min_length=1)
