"""Stuck nonce inspection.

A transaction that never gets mined blocks every later nonce of its
sender. It shows up as a gap between the ``latest`` and ``pending``
transaction counts; it is cleared by sending a zero-value transaction to
self at the stuck nonce with a higher gas price.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from conduit_finality.chain.rpc.models import hex_to_int

if TYPE_CHECKING:
    from conduit_finality.chain.router import DualChannelRouter

logger = logging.getLogger(__name__)

# Replacement transactions must outbid the stuck one.
REPLACEMENT_GAS_MULTIPLIER_PERCENT = 150


@dataclass(frozen=True)
class StuckNonceReport:
    """A sender with queued transactions that are not being mined."""

    address: str
    latest_nonce: int
    pending_nonce: int
    current_gas_price: int
    suggested_gas_price: int

    @property
    def stuck_nonce(self) -> int:
        """The first nonce that has not been mined."""
        return self.latest_nonce

    @property
    def queued(self) -> int:
        """Number of transactions waiting behind the stuck one (inclusive)."""
        return self.pending_nonce - self.latest_nonce

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "stuckNonce": self.stuck_nonce,
            "latestNonce": self.latest_nonce,
            "pendingNonce": self.pending_nonce,
            "queued": self.queued,
            "currentGasPrice": self.current_gas_price,
            "suggestedGasPrice": self.suggested_gas_price,
        }


async def find_stuck_nonce(router: DualChannelRouter, address: str) -> StuckNonceReport | None:
    """Compare the latest and pending nonce of *address* on the read channel.

    Returns None when nothing is queued.
    """
    latest = hex_to_int(await router.dispatch("eth_getTransactionCount", [address, "latest"]))
    pending = hex_to_int(await router.dispatch("eth_getTransactionCount", [address, "pending"]))

    if pending <= latest:
        logger.info("No stuck transactions for %s (nonce %d)", address, latest)
        return None

    gas_price = hex_to_int(await router.dispatch("eth_gasPrice"))
    report = StuckNonceReport(
        address=address,
        latest_nonce=latest,
        pending_nonce=pending,
        current_gas_price=gas_price,
        suggested_gas_price=gas_price * REPLACEMENT_GAS_MULTIPLIER_PERCENT // 100,
    )
    logger.warning(
        "Stuck nonce %d for %s (%d queued), suggested replacement gas price %d wei",
        report.stuck_nonce,
        address,
        report.queued,
        report.suggested_gas_price,
    )
    return report


def replacement_intent(report: StuckNonceReport) -> dict[str, Any]:
    """Keyword arguments for a zero-value self-transfer that clears *report*.

    Pass to :class:`~conduit_finality.transactions.models.TransactionIntent`.
    """
    return {
        "to": report.address,
        "value": 0,
        "data": "0x",
        "nonce": report.stuck_nonce,
        "gas_price": report.suggested_gas_price,
        "gas_limit": 21_000,
    }
