from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

LedgerStatus = Literal["confirmed", "not_found", "mismatch", "unavailable", "skipped"]


class FingerprintVerifyIn(BaseModel):
    fingerprint: str = Field(min_length=1, description="64-character hex fingerprint, optional 0x prefix")


class LedgerCheck(BaseModel):
    is_valid: bool
    batch_code: str | None = None
    registered_at: datetime | None = None


class VerifiedProduct(BaseModel):
    product_name: str
    chemical_name: str
    manufacturer: str
    batch_code: str
    category: str
    expiry_date: datetime


class VerificationVerdict(BaseModel):
    is_valid: bool
    is_known_to_local_store: bool
    is_expired: bool | None = None
    days_until_expiry: int | None = None
    ledger_check: LedgerCheck | None = None
    ledger_status: LedgerStatus
    product: VerifiedProduct | None = None
    fingerprint: str
    batch_code: str | None = None
    verified_at: datetime
    message: str
