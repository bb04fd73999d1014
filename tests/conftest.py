"""Shared test fixtures for the conduit-finality test suite."""

from __future__ import annotations

from typing import Any

import pytest

SENDER = "0x1111111111111111111111111111111111111111"
TOKEN = "0x2222222222222222222222222222222222222222"
ESCROW = "0x3333333333333333333333333333333333333333"


class FakeChannel:
    """Scripted JSON-RPC channel.

    ``responses`` maps a method to a value, an exception, a callable taking
    the params, or a list consumed one item per call (last item repeats).
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, list[Any]]] = []

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        params = list(params or [])
        self.calls.append((method, params))
        if method not in self.responses:
            return None
        value = self.responses[method]
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            value = value(params)
            if isinstance(value, BaseException):
                raise value
        return value


class FakeWallet(FakeChannel):
    """Scripted signing agent."""

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        *,
        address: str = SENDER,
        connected: bool = True,
    ) -> None:
        super().__init__(responses)
        self.address = address
        self.connected = connected

    @property
    def name(self) -> str:
        return "fake-wallet"

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def get_address(self) -> str:
        return self.address


def tx_dict(tx_hash: str, sender: str = SENDER, nonce: int = 7, block: int | None = 100) -> dict[str, Any]:
    """JSON-RPC transaction object."""
    data: dict[str, Any] = {
        "hash": tx_hash,
        "from": sender,
        "nonce": hex(nonce),
        "to": ESCROW,
        "value": "0x0",
    }
    if block is not None:
        data["blockNumber"] = hex(block)
    return data


def block_dict(number: int, txs: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    """JSON-RPC block object with full transactions."""
    return {
        "number": hex(number),
        "hash": f"0xblock{number}",
        "timestamp": hex(1_700_000_000 + number),
        "transactions": txs or [],
    }


def receipt_dict(tx_hash: str, status: int = 1, block: int = 100) -> dict[str, Any]:
    """JSON-RPC receipt object."""
    return {
        "transactionHash": tx_hash,
        "blockNumber": hex(block),
        "status": hex(status),
        "gasUsed": hex(46_000),
    }


@pytest.fixture
def read_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet({"eth_getTransactionCount": "0x7", "eth_sendTransaction": "0xcandidate"})


@pytest.fixture
def router(read_channel, wallet):
    from conduit_finality.chain.router import DualChannelRouter

    return DualChannelRouter(read_channel, wallet)


@pytest.fixture
def fake_channel_cls():
    return FakeChannel


@pytest.fixture
def fake_wallet_cls():
    return FakeWallet


@pytest.fixture
def ledger():
    """Builders for JSON-RPC ledger objects."""

    class Ledger:
        sender = SENDER
        token = TOKEN
        escrow = ESCROW
        tx = staticmethod(tx_dict)
        block = staticmethod(block_dict)
        receipt = staticmethod(receipt_dict)

    return Ledger
