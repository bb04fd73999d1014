"""Transaction lifecycle models — intent, pending, verified, receipt.

A transaction moves through three shapes:

``TransactionIntent``  built by the caller, completed by the submitter
``PendingTransaction`` the signing agent accepted it and returned a hash
``VerifiedTransaction`` the hash was matched against the ledger

and ends with a ``Receipt`` from the confirmation poller.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, replace
from typing import Any

from eth_utils import function_signature_to_4byte_selector

from conduit_finality.chain.rpc.models import hex_to_int, to_hex

# ---------------------------------------------------------------------------
# Operation classification
# ---------------------------------------------------------------------------


class OperationType(enum.StrEnum):
    """Gas tier of a transaction, decided from its calldata selector."""

    APPROVAL = "approval"
    DEPOSIT = "deposit"
    UNKNOWN = "unknown"


def _selector(signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex()


APPROVE_SELECTOR = _selector("approve(address,uint256)")
TRANSFER_SELECTOR = _selector("transfer(address,uint256)")
TRANSFER_FROM_SELECTOR = _selector("transferFrom(address,address,uint256)")
DEPOSIT_FUNDS_SELECTOR = _selector("depositFunds()")

OPERATION_SELECTORS: dict[str, OperationType] = {
    APPROVE_SELECTOR: OperationType.APPROVAL,
    TRANSFER_SELECTOR: OperationType.APPROVAL,
    TRANSFER_FROM_SELECTOR: OperationType.APPROVAL,
    DEPOSIT_FUNDS_SELECTOR: OperationType.DEPOSIT,
}


def classify_operation(data: str | None) -> OperationType:
    """Classify calldata by its leading 4 bytes."""
    if not data or len(data) < 10:
        return OperationType.UNKNOWN
    return OPERATION_SELECTORS.get(data[:10].lower(), OperationType.UNKNOWN)


# ---------------------------------------------------------------------------
# Transaction shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionIntent:
    """A transaction the caller wants to send.

    ``gas_limit``, ``gas_price`` and ``nonce`` may be left as None; the
    submitter fills them in on a copy, the intent itself never changes.
    """

    to: str
    data: str = "0x"
    value: int = 0
    gas_limit: int | None = None
    gas_price: int | None = None
    nonce: int | None = None

    @property
    def operation(self) -> OperationType:
        """Gas tier derived from the calldata selector."""
        return classify_operation(self.data)

    @property
    def is_complete(self) -> bool:
        """Whether every field needed for signing is set."""
        return None not in (self.gas_limit, self.gas_price, self.nonce)

    def with_fields(self, **changes: Any) -> TransactionIntent:
        """Return a copy with *changes* applied."""
        return replace(self, **changes)

    def to_rpc(self, sender: str) -> dict[str, Any]:
        """Encode as a JSON-RPC transaction object (hex quantities)."""
        tx: dict[str, Any] = {
            "from": sender,
            "to": self.to,
            "data": self.data or "0x",
            "value": to_hex(self.value),
        }
        if self.gas_limit is not None:
            tx["gas"] = to_hex(self.gas_limit)
        if self.gas_price is not None:
            tx["gasPrice"] = to_hex(self.gas_price)
        if self.nonce is not None:
            tx["nonce"] = to_hex(self.nonce)
        return tx


@dataclass(frozen=True)
class PendingTransaction:
    """A transaction accepted by the signing agent, not yet matched on chain."""

    sender: str
    nonce: int
    candidate_hash: str
    submitted_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class VerifiedTransaction:
    """A transaction whose hash was observed on the read channel.

    ``degraded`` is set when reconciliation ran out of time and the
    agent-returned hash was kept as the best guess.
    """

    sender: str
    nonce: int
    confirmed_hash: str
    candidate_hash: str = ""
    degraded: bool = False

    @property
    def hash_mismatch(self) -> bool:
        """Whether the ledger hash differs from the one the agent returned."""
        return bool(self.candidate_hash) and self.confirmed_hash.lower() != self.candidate_hash.lower()


class ReceiptStatus(enum.StrEnum):
    """Execution outcome of a mined transaction."""

    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Receipt:
    """Terminal on-chain record of a transaction."""

    hash: str
    block_number: int
    status: ReceiptStatus
    gas_used: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is ReceiptStatus.SUCCESS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Receipt:
        """Create from a JSON-RPC receipt object (``status`` 0x1 = success)."""
        status = ReceiptStatus.SUCCESS if hex_to_int(data.get("status"), 1) == 1 else ReceiptStatus.FAILURE
        return cls(
            hash=data.get("transactionHash", ""),
            block_number=hex_to_int(data.get("blockNumber")),
            status=status,
            gas_used=hex_to_int(data.get("gasUsed")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "blockNumber": self.block_number,
            "status": self.status.value,
            "gasUsed": self.gas_used,
        }
