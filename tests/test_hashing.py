from datetime import date, datetime, timezone

import pytest

from puremeds.core.errors import InvalidInput, MalformedHash
from puremeds.services.hashing import (
    canonical_expiry,
    derive_fingerprint,
    fingerprint_to_bytes32,
    normalize_fingerprint,
)

IDENTITY = ("PM-12345", "Acme", "2026-01-01T00:00:00Z", "Paracetamol")


def test_fingerprint_is_64_lowercase_hex_and_stable():
    first = derive_fingerprint(*IDENTITY)
    second = derive_fingerprint(*IDENTITY)
    assert first == second
    assert len(first) == 64
    assert first == first.lower()
    int(first, 16)


@pytest.mark.parametrize(
    "expiry",
    [
        "2026-01-01",
        "2026-01-01T00:00:00",
        "2026-01-01T00:00:00.000Z",
        "2026-01-01T05:30:00+05:30",
        date(2026, 1, 1),
        datetime(2026, 1, 1),
        datetime(2026, 1, 1, tzinfo=timezone.utc),
    ],
)
def test_equivalent_expiry_forms_share_a_fingerprint(expiry):
    assert derive_fingerprint("PM-12345", "Acme", expiry, "Paracetamol") == derive_fingerprint(*IDENTITY)


def test_canonical_expiry_is_millisecond_utc_instant():
    assert canonical_expiry("2026-01-01T00:00:00Z") == "2026-01-01T00:00:00.000Z"
    assert canonical_expiry("2026-03-04T10:11:12.345678+01:00") == "2026-03-04T09:11:12.345Z"


def test_changing_any_field_changes_the_fingerprint():
    base = derive_fingerprint(*IDENTITY)
    variants = [
        ("PM-12346", "Acme", "2026-01-01T00:00:00Z", "Paracetamol"),
        ("PM-12345", "Acme Labs", "2026-01-01T00:00:00Z", "Paracetamol"),
        ("PM-12345", "Acme", "2026-01-02T00:00:00Z", "Paracetamol"),
        ("PM-12345", "Acme", "2026-01-01T00:00:01Z", "Paracetamol"),
        ("PM-12345", "Acme", "2026-01-01T00:00:00Z", "Ibuprofen"),
    ]
    fingerprints = {derive_fingerprint(*v) for v in variants}
    assert base not in fingerprints
    assert len(fingerprints) == len(variants)


@pytest.mark.parametrize(
    "identity",
    [
        ("", "Acme", "2026-01-01", "Paracetamol"),
        ("PM-12345", "", "2026-01-01", "Paracetamol"),
        ("PM-12345", "Acme", None, "Paracetamol"),
        ("PM-12345", "Acme", "2026-01-01", "   "),
    ],
)
def test_missing_fields_are_rejected(identity):
    with pytest.raises(InvalidInput):
        derive_fingerprint(*identity)


@pytest.mark.parametrize("batch_code", ["12345", "PM-", "pm-12345", "PM-12A", "XX-12345"])
def test_batch_code_must_match_pattern(batch_code):
    with pytest.raises(InvalidInput):
        derive_fingerprint(batch_code, "Acme", "2026-01-01", "Paracetamol")


def test_unparseable_expiry_is_rejected():
    with pytest.raises(InvalidInput):
        derive_fingerprint("PM-12345", "Acme", "next tuesday", "Paracetamol")


def test_normalize_fingerprint_accepts_prefix_and_uppercase():
    fingerprint = derive_fingerprint(*IDENTITY)
    assert normalize_fingerprint("0x" + fingerprint.upper()) == fingerprint
    assert normalize_fingerprint(f"  {fingerprint} ") == fingerprint


@pytest.mark.parametrize("value", ["", "abc", "z" * 64, "0x" + "a" * 63, "a" * 65])
def test_normalize_fingerprint_rejects_bad_shapes(value):
    with pytest.raises(MalformedHash):
        normalize_fingerprint(value)


def test_fingerprint_to_bytes32_is_fixed_width():
    fingerprint = derive_fingerprint(*IDENTITY)
    raw = fingerprint_to_bytes32(fingerprint)
    assert len(raw) == 32
    assert raw.hex() == fingerprint
