"""Confirmation poller — wait for a receipt on the read channel.

State machine::

    PENDING ──(no receipt)──> PENDING
    PENDING ──(status 0x1)──> MINED
    PENDING ──(status 0x0)──> FAILED
    PENDING ──(deadline)────> TIMED_OUT

Only the read channel is used, so confirmation keeps working while the
signing agent is unreachable.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
import time
from typing import TYPE_CHECKING

from conduit_finality.config.settings import PollerConfig
from conduit_finality.errors.chain_errors import ReceiptTimeoutError, TransactionFailedError
from conduit_finality.errors.finality_errors import FinalityError
from conduit_finality.transactions.models import Receipt

if TYPE_CHECKING:
    from conduit_finality.chain.router import DualChannelRouter
    from conduit_finality.metrics.collector import FinalityMetrics

logger = logging.getLogger(__name__)


class PollState(enum.StrEnum):
    """Receipt polling states."""

    PENDING = "pending"
    MINED = "mined"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ConfirmationPoller:
    """Poll ``eth_getTransactionReceipt`` at a fixed interval until terminal."""

    def __init__(
        self,
        router: DualChannelRouter,
        config: PollerConfig | None = None,
        *,
        metrics: FinalityMetrics | None = None,
    ) -> None:
        self._router = router
        self._config = config or PollerConfig()
        self._metrics = metrics

    def max_attempts(self, timeout_ms: int) -> int:
        """Upper bound on receipt queries for *timeout_ms*."""
        return max(1, math.ceil(timeout_ms / 1000 / self._config.interval))

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout_ms: int | None = None,
        *,
        raise_on_failure: bool = False,
    ) -> Receipt:
        """Poll until *tx_hash* has a receipt.

        Returns the receipt for both MINED and FAILED; ``receipt.status``
        is authoritative. With *raise_on_failure* a reverted transaction
        raises :class:`TransactionFailedError` instead.

        Raises:
            ReceiptTimeoutError: No receipt before *timeout_ms* elapsed.
        """
        if timeout_ms is None:
            timeout_ms = self._config.timeout_ms
        if self._metrics is not None:
            with self._metrics.track_receipt_wait():
                receipt = await self._poll(tx_hash, timeout_ms)
        else:
            receipt = await self._poll(tx_hash, timeout_ms)

        if raise_on_failure and not receipt.succeeded:
            raise TransactionFailedError(tx_hash, block_number=receipt.block_number)
        return receipt

    async def _poll(self, tx_hash: str, timeout_ms: int) -> Receipt:
        deadline = time.monotonic() + timeout_ms / 1000
        limit = self.max_attempts(timeout_ms)
        attempts = 0

        while attempts < limit:
            attempts += 1
            try:
                data = await self._router.dispatch("eth_getTransactionReceipt", [tx_hash])
            except FinalityError as exc:
                if not exc.is_retryable:
                    raise
                logger.debug("Receipt query %d for %s failed: %s", attempts, tx_hash, exc.message)
                data = None

            if data:
                receipt = Receipt.from_dict(data)
                if not receipt.hash:
                    receipt = Receipt(tx_hash, receipt.block_number, receipt.status, receipt.gas_used)
                state = PollState.MINED if receipt.succeeded else PollState.FAILED
                logger.info(
                    "Transaction %s %s in block %d after %d attempts",
                    tx_hash,
                    state.value,
                    receipt.block_number,
                    attempts,
                )
                return receipt

            remaining = deadline - time.monotonic()
            if remaining <= 0 or attempts >= limit:
                break
            await asyncio.sleep(min(self._config.interval, remaining))

        logger.warning(
            "No receipt for %s after %d attempts (%d ms): %s",
            tx_hash,
            attempts,
            timeout_ms,
            PollState.TIMED_OUT.value,
        )
        raise ReceiptTimeoutError(tx_hash, attempts=attempts, timeout_ms=timeout_ms)
