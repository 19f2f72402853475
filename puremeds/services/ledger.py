"""Clients for the external medicine registry ledger.

The verification engine only sees :class:`LedgerClient`. Which adapter backs
it is decided once at startup by :func:`build_ledger_client`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from puremeds.core.config import Settings
from puremeds.core.errors import AlreadyRegistered, LedgerConfigurationError, LedgerUnavailable
from puremeds.services.hashing import fingerprint_to_bytes32, normalize_fingerprint

logger = logging.getLogger(__name__)

MEDICINE_REGISTRY_ABI = [
    {
        "inputs": [
            {"name": "_hash", "type": "bytes32"},
            {"name": "_batchId", "type": "string"},
        ],
        "name": "registerMedicine",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "_hash", "type": "bytes32"}],
        "name": "verifyMedicine",
        "outputs": [
            {"name": "isValid", "type": "bool"},
            {"name": "batchId", "type": "string"},
            {"name": "registeredAt", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "_hash", "type": "bytes32"}],
        "name": "isMedicineRegistered",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
]

_TRANSPORT_ERRORS = (Web3Exception, RequestException, OSError, ValueError)


def _is_duplicate_revert(exc: ContractLogicError) -> bool:
    reason = getattr(exc, "message", None) or str(exc)
    return "already registered" in reason.lower()


@dataclass(frozen=True)
class LedgerReceipt:
    tx_reference: str | None
    block_reference: int | None


@dataclass(frozen=True)
class LedgerRecord:
    fingerprint: str
    is_valid: bool
    batch_code: str | None = None
    registered_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "batch_code": self.batch_code,
            "registered_at": self.registered_at.isoformat() if self.registered_at else None,
        }


class LedgerClient(ABC):
    name = "ledger"

    def connect(self) -> None:
        """Set up the connection; adapters without one do nothing."""

    @abstractmethod
    def register(self, fingerprint: str, batch_code: str) -> LedgerReceipt:
        ...

    @abstractmethod
    def query(self, fingerprint: str) -> LedgerRecord:
        ...


class DisabledLedgerClient(LedgerClient):
    name = "disabled"

    def register(self, fingerprint: str, batch_code: str) -> LedgerReceipt:
        raise LedgerUnavailable("Ledger is not configured")

    def query(self, fingerprint: str) -> LedgerRecord:
        raise LedgerUnavailable("Ledger is not configured")


class InMemoryLedgerClient(LedgerClient):
    """Append-only ledger held in process memory."""

    name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, LedgerRecord] = {}
        self._lock = Lock()
        self._block = 0

    def register(self, fingerprint: str, batch_code: str) -> LedgerReceipt:
        key = normalize_fingerprint(fingerprint)
        with self._lock:
            if key in self._records:
                raise AlreadyRegistered()
            self._block += 1
            self._records[key] = LedgerRecord(
                fingerprint=key,
                is_valid=True,
                batch_code=batch_code,
                registered_at=datetime.now(timezone.utc),
            )
            block = self._block
        return LedgerReceipt(tx_reference=f"0x{key}", block_reference=block)

    def query(self, fingerprint: str) -> LedgerRecord:
        key = normalize_fingerprint(fingerprint)
        record = self._records.get(key)
        if record is None:
            return LedgerRecord(fingerprint=key, is_valid=False)
        return record


class Web3LedgerClient(LedgerClient):
    """MedicineRegistry contract reached over a JSON-RPC HTTP provider."""

    name = "web3"

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: str,
        timeout_seconds: int = 30,
    ) -> None:
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self._private_key = private_key
        self.timeout_seconds = timeout_seconds
        self._web3: Web3 | None = None
        self._contract = None
        self._account = None
        self._lock = Lock()

    def connect(self) -> None:
        if not self.rpc_url:
            raise LedgerConfigurationError("LEDGER_RPC_URL is not set")
        if not self.contract_address or not Web3.is_address(self.contract_address):
            raise LedgerConfigurationError("LEDGER_CONTRACT_ADDRESS is missing or invalid")
        if not self._private_key:
            raise LedgerConfigurationError("LEDGER_PRIVATE_KEY is not set")

        web3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout_seconds}))
        try:
            connected = web3.is_connected()
        except _TRANSPORT_ERRORS as exc:
            raise LedgerConfigurationError(f"Cannot reach ledger node at {self.rpc_url}: {exc}") from exc
        if not connected:
            raise LedgerConfigurationError(f"Cannot reach ledger node at {self.rpc_url}")

        try:
            account = web3.eth.account.from_key(self._private_key)
        except ValueError as exc:
            raise LedgerConfigurationError("LEDGER_PRIVATE_KEY is not a valid key") from exc

        contract = web3.eth.contract(
            address=Web3.to_checksum_address(self.contract_address),
            abi=MEDICINE_REGISTRY_ABI,
        )
        with self._lock:
            self._web3, self._contract, self._account = web3, contract, account
        logger.info(
            "Ledger connected: contract=%s signer=%s", self.contract_address, account.address
        )

    def _ensure_connected(self):
        if self._contract is None:
            self.connect()
        return self._web3, self._contract, self._account

    def register(self, fingerprint: str, batch_code: str) -> LedgerReceipt:
        hash_bytes = fingerprint_to_bytes32(fingerprint)
        web3, contract, account = self._ensure_connected()
        try:
            if contract.functions.isMedicineRegistered(hash_bytes).call():
                raise AlreadyRegistered()

            tx = contract.functions.registerMedicine(hash_bytes, batch_code).build_transaction(
                {
                    "from": account.address,
                    "nonce": web3.eth.get_transaction_count(account.address, "pending"),
                }
            )
            signed = account.sign_transaction(tx)
            tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.timeout_seconds)
        except ContractLogicError as exc:
            if _is_duplicate_revert(exc):
                raise AlreadyRegistered() from exc
            raise LedgerUnavailable(f"Ledger rejected registration: {exc}") from exc
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(f"Ledger registration failed: {exc}") from exc

        if receipt["status"] != 1:
            raise LedgerUnavailable("Ledger registration transaction reverted")

        tx_reference = Web3.to_hex(receipt["transactionHash"])
        logger.info(
            "Registered %s on ledger tx=%s block=%s gas=%s",
            batch_code,
            tx_reference,
            receipt["blockNumber"],
            receipt["gasUsed"],
        )
        return LedgerReceipt(tx_reference=tx_reference, block_reference=receipt["blockNumber"])

    def query(self, fingerprint: str) -> LedgerRecord:
        key = normalize_fingerprint(fingerprint)
        _, contract, _ = self._ensure_connected()
        try:
            is_valid, batch_code, registered_at = contract.functions.verifyMedicine(
                bytes.fromhex(key)
            ).call()
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(f"Ledger query failed: {exc}") from exc

        return LedgerRecord(
            fingerprint=key,
            is_valid=bool(is_valid),
            batch_code=batch_code or None,
            registered_at=(
                datetime.fromtimestamp(int(registered_at), tz=timezone.utc) if registered_at else None
            ),
        )


def build_ledger_client(config: Settings) -> LedgerClient:
    backend = config.ledger_backend
    if backend == "memory":
        return InMemoryLedgerClient()
    if backend == "disabled" or (backend == "web3" and not config.ledger_rpc_url):
        return DisabledLedgerClient()
    if backend == "web3":
        return Web3LedgerClient(
            rpc_url=config.ledger_rpc_url,
            contract_address=config.ledger_contract_address,
            private_key=config.ledger_private_key,
            timeout_seconds=config.ledger_timeout_seconds,
        )
    raise LedgerConfigurationError(f"Unknown LEDGER_BACKEND {backend!r}")
