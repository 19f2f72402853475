"""Medicine authenticity verification.

A verification decodes the QR payload (image path only), looks the fingerprint
up in the local store, asks the ledger for an independent confirmation, and
folds both answers plus the expiry date into one verdict. An unknown
fingerprint is a normal verdict, not an error. A ledger outage only adds a
note to the message.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from puremeds.core.errors import LedgerUnavailable
from puremeds.models.entities import Product
from puremeds.schemas.verification import (
    LedgerCheck,
    LedgerStatus,
    VerificationVerdict,
    VerifiedProduct,
)
from puremeds.services.hashing import normalize_fingerprint
from puremeds.services.ledger import LedgerClient, LedgerRecord
from puremeds.services.qr_codec import decode_file
from puremeds.services.uploads import staged_upload

logger = logging.getLogger(__name__)

EXPIRY_WARNING_DAYS = 30

NOT_DISTRIBUTED_MESSAGE = (
    "This medicine is not distributed by PureMeds. "
    "The {source} does not match any registered medicine in our system."
)
EXPIRED_MESSAGE = "Medicine verified but has expired. Do not use this medicine."
EXPIRING_SOON_MESSAGE = "Medicine verified. Warning: Expires in {days} days."
VERIFIED_MESSAGE = "Medicine verified successfully!"
LEDGER_NOTE = " Note: Ledger confirmation unavailable."


class ProductStore(Protocol):
    def find_by_fingerprint(self, fingerprint: str) -> Product | None:
        ...


class SqlProductStore:
    def __init__(self, db: Session):
        self.db = db

    def find_by_fingerprint(self, fingerprint: str) -> Product | None:
        return self.db.execute(
            select(Product).where(Product.fingerprint == fingerprint)
        ).scalar_one_or_none()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; stored values are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def evaluate_expiry(expiry: datetime, now: datetime) -> tuple[bool, int]:
    remaining = _as_utc(expiry) - now
    if remaining <= timedelta(0):
        return True, 0
    return False, math.ceil(remaining / timedelta(days=1))


def reconcile_ledger(record: LedgerRecord | None, batch_code: str) -> LedgerStatus:
    if record is None:
        return "unavailable"
    if not record.is_valid:
        return "not_found"
    if record.batch_code and record.batch_code != batch_code:
        return "mismatch"
    return "confirmed"


def compose_message(is_expired: bool, days_until_expiry: int, ledger_status: LedgerStatus) -> str:
    if is_expired:
        message = EXPIRED_MESSAGE
    elif days_until_expiry <= EXPIRY_WARNING_DAYS:
        message = EXPIRING_SOON_MESSAGE.format(days=days_until_expiry)
    else:
        message = VERIFIED_MESSAGE

    if ledger_status != "confirmed":
        message += LEDGER_NOTE
    return message


class VerificationEngine:
    def __init__(
        self,
        store: ProductStore,
        ledger: LedgerClient,
        upload_dir: str | Path,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ledger = ledger
        self.upload_dir = Path(upload_dir)
        self.clock = clock

    def verify_by_image(self, image: bytes, suffix: str | None = ".png") -> VerificationVerdict:
        with staged_upload(self.upload_dir, image, suffix=suffix) as path:
            payload = decode_file(path)
        return self._verify(payload.fingerprint, source="QR code", scanned_batch_code=payload.batch_code)

    def verify_by_fingerprint(self, fingerprint: str) -> VerificationVerdict:
        return self._verify(fingerprint, source="hash")

    def _query_ledger(self, fingerprint: str) -> LedgerRecord | None:
        try:
            return self.ledger.query(fingerprint)
        except LedgerUnavailable as exc:
            logger.warning("Ledger cross-check skipped for %s: %s", fingerprint, exc.message)
            return None

    def _verify(
        self,
        fingerprint: str,
        *,
        source: str,
        scanned_batch_code: str | None = None,
    ) -> VerificationVerdict:
        key = normalize_fingerprint(fingerprint)
        now = self.clock()

        product = self.store.find_by_fingerprint(key)
        if product is None:
            logger.info("Verification miss for fingerprint %s", key)
            return VerificationVerdict(
                is_valid=False,
                is_known_to_local_store=False,
                ledger_status="skipped",
                fingerprint=key,
                batch_code=scanned_batch_code,
                verified_at=now,
                message=NOT_DISTRIBUTED_MESSAGE.format(source=source),
            )

        record = self._query_ledger(key)
        ledger_status = reconcile_ledger(record, product.batch_code)
        is_expired, days_until_expiry = evaluate_expiry(product.expiry_date, now)

        return VerificationVerdict(
            is_valid=True,
            is_known_to_local_store=True,
            is_expired=is_expired,
            days_until_expiry=days_until_expiry,
            ledger_check=LedgerCheck(**record.to_dict()) if record is not None else None,
            ledger_status=ledger_status,
            product=VerifiedProduct(
                product_name=product.product_name,
                chemical_name=product.chemical_name,
                manufacturer=product.manufacturer,
                batch_code=product.batch_code,
                category=product.category,
                expiry_date=_as_utc(product.expiry_date),
            ),
            fingerprint=key,
            batch_code=product.batch_code,
            verified_at=now,
            message=compose_message(is_expired, days_until_expiry, ledger_status),
        )
