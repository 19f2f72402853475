"""Batch fingerprints.

A fingerprint is the SHA-256 digest of a batch's identity fields joined in a
fixed order. The expiry is reduced to one canonical ISO-8601 UTC instant
(``2026-01-01T00:00:00.000Z``) before hashing, so ``"2026-01-01"``,
``date(2026, 1, 1)`` and ``"2026-01-01T05:30:00+05:30"`` all hash the same.
Changing that format changes every fingerprint already on the ledger.
"""

from __future__ import annotations

import hashlib
import re
from datetime import date, datetime, time, timezone

from puremeds.core.errors import InvalidInput, MalformedHash

BATCH_CODE_PATTERN = re.compile(r"^PM-\d+$")
FIELD_SEPARATOR = "|"
FINGERPRINT_LENGTH = 64

_HEX_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def is_valid_batch_code(batch_code: str) -> bool:
    return bool(batch_code) and BATCH_CODE_PATTERN.match(batch_code) is not None


def parse_expiry(value: date | datetime | str) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes and bare dates are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidInput(f"Unparseable expiry date: {value!r}") from exc
    else:
        raise InvalidInput("Expiry date is required")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def canonical_expiry(value: date | datetime | str) -> str:
    instant = parse_expiry(value)
    return instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z"


def derive_fingerprint(
    batch_code: str,
    manufacturer: str,
    expiry_date: date | datetime | str,
    product_name: str,
) -> str:
    fields = {
        "batch_code": batch_code,
        "manufacturer": manufacturer,
        "expiry_date": expiry_date,
        "product_name": product_name,
    }
    missing = [
        name
        for name, value in fields.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise InvalidInput(f"All fields are required for fingerprinting; missing: {', '.join(missing)}")
    if not is_valid_batch_code(batch_code):
        raise InvalidInput(f"Invalid batch code {batch_code!r}; expected PM-<number>")

    base = FIELD_SEPARATOR.join(
        [batch_code, manufacturer, canonical_expiry(expiry_date), product_name]
    )
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def normalize_fingerprint(value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedHash("Fingerprint is required")
    clean = value.strip().lower()
    if clean.startswith("0x"):
        clean = clean[2:]
    if len(clean) != FINGERPRINT_LENGTH or not _HEX_PATTERN.match(clean):
        raise MalformedHash()
    return clean


def fingerprint_to_bytes32(value: str) -> bytes:
    return bytes.fromhex(normalize_fingerprint(value))
