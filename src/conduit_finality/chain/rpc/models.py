"""Ledger data models — blocks and transactions as seen on the read channel.

Data classes built from standard Ethereum JSON-RPC responses
(``eth_getBlockByNumber``, ``eth_getTransactionByHash``). Quantities
arrive hex-encoded and are decoded to ``int`` here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Hex helpers
# ---------------------------------------------------------------------------


def hex_to_int(value: Any, default: int = 0) -> int:
    """Decode a JSON-RPC quantity (``"0x1a"``) or plain int to ``int``."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    text = str(value)
    if text.startswith(("0x", "0X")):
        return int(text, 16) if len(text) > 2 else default
    return int(text)


def to_hex(value: int) -> str:
    """Encode an ``int`` as a JSON-RPC quantity."""
    return hex(value)


def normalize_address(address: str | None) -> str:
    """Lower-case an address for comparisons ('' for None)."""
    return (address or "").lower()


# ---------------------------------------------------------------------------
# Transactions and blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerTransaction:
    """A transaction observed on chain.

    Attributes:
        hash: Transaction hash (0x-prefixed hex).
        sender: ``from`` address as returned by the node.
        nonce: Sender nonce.
        to: Recipient address (None for contract creation).
        block_number: Block the transaction was included in (None if pending).
        value: Transferred value in wei.
    """

    hash: str
    sender: str
    nonce: int
    to: str | None = None
    block_number: int | None = None
    value: int = 0

    def matches(self, sender: str, nonce: int) -> bool:
        """Whether this transaction was sent by *sender* with *nonce*."""
        return normalize_address(self.sender) == normalize_address(sender) and self.nonce == nonce

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerTransaction:
        """Create from a JSON-RPC transaction object."""
        block_number = data.get("blockNumber")
        return cls(
            hash=data.get("hash", ""),
            sender=data.get("from", ""),
            nonce=hex_to_int(data.get("nonce")),
            to=data.get("to"),
            block_number=hex_to_int(block_number) if block_number is not None else None,
            value=hex_to_int(data.get("value")),
        )


@dataclass(frozen=True)
class Block:
    """A block with its transactions.

    ``transactions`` holds full :class:`LedgerTransaction` objects when the
    block was fetched with ``full_transactions=True``; ``transaction_hashes``
    always lists the hashes.
    """

    number: int
    hash: str
    timestamp: int = 0
    transactions: list[LedgerTransaction] = field(default_factory=list)
    transaction_hashes: list[str] = field(default_factory=list)

    def find(self, sender: str, nonce: int) -> LedgerTransaction | None:
        """Return the transaction sent by *sender* with *nonce*, if present."""
        for tx in self.transactions:
            if tx.matches(sender, nonce):
                return tx
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Block:
        """Create from a JSON-RPC block object."""
        txs: list[LedgerTransaction] = []
        hashes: list[str] = []
        for item in data.get("transactions", []):
            if isinstance(item, dict):
                tx = LedgerTransaction.from_dict(item)
                txs.append(tx)
                hashes.append(tx.hash)
            else:
                hashes.append(str(item))
        return cls(
            number=hex_to_int(data.get("number")),
            hash=data.get("hash", ""),
            timestamp=hex_to_int(data.get("timestamp")),
            transactions=txs,
            transaction_hashes=hashes,
        )
