"""Product-batch registration: the write path behind every verifiable QR code."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from puremeds.core.errors import AlreadyRegistered, BatchAlreadyExists, InvalidInput, LedgerUnavailable
from puremeds.models.entities import Product
from puremeds.schemas.product import ProductIn
from puremeds.services import qr_codec
from puremeds.services.audit import append_audit_event
from puremeds.services.catalog import get_product_by_batch, product_to_dict
from puremeds.services.hashing import derive_fingerprint, is_valid_batch_code, parse_expiry
from puremeds.services.ledger import LedgerClient, LedgerReceipt
from puremeds.services.supply_chain import create_supply_chain

logger = logging.getLogger(__name__)


def register_product(
    db: Session,
    ledger: LedgerClient,
    payload: ProductIn,
    *,
    actor_id: str,
    qr_dir: str | Path,
    ledger_required: bool = False,
) -> dict:
    if not is_valid_batch_code(payload.batch_code):
        raise InvalidInput("Invalid batch code format. Use PM-{number} (e.g., PM-12345)")

    expiry = parse_expiry(payload.expiry_date)
    if expiry <= datetime.now(timezone.utc):
        raise InvalidInput("Expiry date must be in the future")

    if get_product_by_batch(db, payload.batch_code) is not None:
        raise BatchAlreadyExists()

    fingerprint = derive_fingerprint(
        payload.batch_code, payload.manufacturer, expiry, payload.product_name
    )
    qr_png = qr_codec.encode(fingerprint, payload.batch_code)
    qr_path = Path(qr_dir) / f"{payload.batch_code}.png"

    product = Product(
        product_name=payload.product_name,
        chemical_name=payload.chemical_name,
        manufacturer=payload.manufacturer,
        price=Decimal(str(payload.price)),
        purpose=payload.purpose,
        side_effects=payload.side_effects,
        category=payload.category,
        product_image=payload.product_image,
        available_stock=payload.available_stock,
        batch_code=payload.batch_code,
        expiry_date=expiry,
        fingerprint=fingerprint,
        qr_code=str(qr_path),
    )
    try:
        db.add(product)
        db.flush()
        create_supply_chain(db, product)
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise BatchAlreadyExists() from exc

    # Local writes are staged first; the ledger entry is the one step that cannot be undone.
    try:
        qr_codec.write_qr_artifact(qr_dir, payload.batch_code, qr_png)
        append_audit_event(
            db,
            actor_id=actor_id,
            action_type="product.registered",
            entity_type="product",
            entity_id=product.product_id,
            payload={"batch_code": payload.batch_code, "fingerprint": fingerprint},
        )
        receipt = _record_on_ledger(ledger, fingerprint, payload.batch_code, ledger_required)
        if receipt is not None:
            product.ledger_tx_hash = receipt.tx_reference
            product.ledger_block_number = receipt.block_reference
        db.commit()
    except Exception:
        db.rollback()
        qr_path.unlink(missing_ok=True)
        raise

    db.refresh(product)
    logger.info("Registered batch %s fingerprint=%s", payload.batch_code, fingerprint)

    result = product_to_dict(product)
    result["ledger_registered"] = receipt is not None
    return result


def _record_on_ledger(
    ledger: LedgerClient, fingerprint: str, batch_code: str, ledger_required: bool
) -> LedgerReceipt | None:
    """Write the fingerprint to the ledger.

    An existing entry for the same batch is left over from an attempt whose
    local commit failed, and is accepted as this batch's registration.
    Returns None when the ledger is down and not required.
    """
    try:
        try:
            return ledger.register(fingerprint, batch_code)
        except AlreadyRegistered:
            existing = ledger.query(fingerprint)
            if not (existing.is_valid and existing.batch_code == batch_code):
                raise
            logger.info("Fingerprint for %s already on ledger; reusing entry", batch_code)
            return LedgerReceipt(tx_reference=None, block_reference=None)
    except LedgerUnavailable as exc:
        if ledger_required:
            raise
        logger.warning("Registered %s without ledger confirmation: %s", batch_code, exc.message)
        return None
