from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError
from web3.exceptions import ContractLogicError

from puremeds.core.config import Settings
from puremeds.core.errors import (
    AlreadyRegistered,
    LedgerConfigurationError,
    LedgerUnavailable,
    MalformedHash,
)
from puremeds.services.hashing import derive_fingerprint
from puremeds.services.ledger import (
    DisabledLedgerClient,
    InMemoryLedgerClient,
    Web3LedgerClient,
    build_ledger_client,
)

FINGERPRINT = derive_fingerprint("PM-12345", "Acme", "2026-01-01", "Paracetamol")


class _Call:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def call(self):
        if self.error:
            raise self.error
        return self.result


class _Functions:
    def __init__(self, verify_result=None, error=None, register_error=None):
        self.verify_result = verify_result
        self.error = error
        self.register_error = register_error
        self.seen = []

    def isMedicineRegistered(self, hash_bytes):
        return _Call(False)

    def registerMedicine(self, hash_bytes, batch_code):
        raise self.register_error

    def verifyMedicine(self, hash_bytes):
        self.seen.append(hash_bytes)
        return _Call(self.verify_result, self.error)


class _Contract:
    def __init__(self, functions):
        self.functions = functions


def _connected_client(functions) -> Web3LedgerClient:
    client = Web3LedgerClient("http://127.0.0.1:8545", "0x" + "1" * 40, "0x" + "2" * 64)
    client._contract = _Contract(functions)
    client._account = SimpleNamespace(address="0x" + "3" * 40)
    return client


def _settings(**overrides) -> Settings:
    config = Settings()
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def test_memory_ledger_registers_and_answers_queries():
    ledger = InMemoryLedgerClient()
    receipt = ledger.register(FINGERPRINT, "PM-12345")
    assert receipt.block_reference == 1

    record = ledger.query("0x" + FINGERPRINT.upper())
    assert record.is_valid is True
    assert record.batch_code == "PM-12345"
    assert record.registered_at is not None


def test_memory_ledger_rejects_duplicate_registration():
    ledger = InMemoryLedgerClient()
    ledger.register(FINGERPRINT, "PM-12345")
    with pytest.raises(AlreadyRegistered):
        ledger.register(FINGERPRINT, "PM-99999")


def test_memory_ledger_reports_unknown_fingerprint_as_invalid():
    record = InMemoryLedgerClient().query(FINGERPRINT)
    assert record.is_valid is False
    assert record.batch_code is None


def test_memory_ledger_rejects_malformed_hash():
    with pytest.raises(MalformedHash):
        InMemoryLedgerClient().register("abc", "PM-1")


def test_disabled_ledger_is_unavailable():
    ledger = DisabledLedgerClient()
    with pytest.raises(LedgerUnavailable):
        ledger.query(FINGERPRINT)
    with pytest.raises(LedgerUnavailable):
        ledger.register(FINGERPRINT, "PM-12345")


def test_web3_connect_requires_configuration():
    client = Web3LedgerClient("", "", "")
    with pytest.raises(LedgerConfigurationError):
        client.connect()
    assert issubclass(LedgerConfigurationError, LedgerUnavailable)


def test_web3_connect_rejects_bad_contract_address():
    client = Web3LedgerClient("http://127.0.0.1:8545", "not-an-address", "0x" + "2" * 64)
    with pytest.raises(LedgerConfigurationError):
        client.connect()


def test_web3_query_maps_contract_result():
    functions = _Functions(verify_result=(True, "PM-12345", 1_700_000_000))
    record = _connected_client(functions).query(FINGERPRINT)

    assert functions.seen == [bytes.fromhex(FINGERPRINT)]
    assert record.is_valid is True
    assert record.batch_code == "PM-12345"
    assert record.registered_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


def test_web3_query_unknown_fingerprint():
    record = _connected_client(_Functions(verify_result=(False, "", 0))).query(FINGERPRINT)
    assert record.is_valid is False
    assert record.batch_code is None
    assert record.registered_at is None


def test_web3_query_transport_failure_is_unavailable():
    client = _connected_client(_Functions(error=RequestsConnectionError("connection refused")))
    with pytest.raises(LedgerUnavailable):
        client.query(FINGERPRINT)


def test_build_ledger_client_selects_adapter():
    assert isinstance(build_ledger_client(_settings(ledger_backend="memory")), InMemoryLedgerClient)
    assert isinstance(build_ledger_client(_settings(ledger_backend="disabled")), DisabledLedgerClient)
    assert isinstance(
        build_ledger_client(_settings(ledger_backend="web3", ledger_rpc_url="")), DisabledLedgerClient
    )
    web3_client = build_ledger_client(
        _settings(ledger_backend="web3", ledger_rpc_url="http://127.0.0.1:8545")
    )
    assert isinstance(web3_client, Web3LedgerClient)


def test_build_ledger_client_rejects_unknown_backend():
    with pytest.raises(LedgerConfigurationError):
        build_ledger_client(_settings(ledger_backend="carrier-pigeon"))


def test_web3_duplicate_revert_is_already_registered():
    functions = _Functions(
        register_error=ContractLogicError("execution reverted: Medicine already registered")
    )
    with pytest.raises(AlreadyRegistered):
        _connected_client(functions).register(FINGERPRINT, "PM-12345")


def test_web3_other_revert_is_unavailable():
    functions = _Functions(register_error=ContractLogicError("execution reverted: caller is not owner"))
    with pytest.raises(LedgerUnavailable) as excinfo:
        _connected_client(functions).register(FINGERPRINT, "PM-12345")
    assert not isinstance(excinfo.value, AlreadyRegistered)
