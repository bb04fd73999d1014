"""Transaction identity reconciler — match the agent's hash against the ledger.

A signing agent can return a hash for a transaction other than the one it
actually broadcast. The reconciler looks for the transaction by what cannot
be faked, the ``(sender, nonce)`` pair, in recent blocks on the read
channel, and substitutes the hash it finds there.

The root cause of the mismatch on the agent side is not known; this
detects and corrects it, it does not prove it cannot happen.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from conduit_finality.chain.rpc.models import Block, LedgerTransaction, hex_to_int, to_hex
from conduit_finality.config.settings import ReconcilerConfig
from conduit_finality.errors.finality_errors import FinalityError
from conduit_finality.transactions.models import PendingTransaction, VerifiedTransaction

if TYPE_CHECKING:
    from conduit_finality.chain.router import DualChannelRouter
    from conduit_finality.metrics.collector import FinalityMetrics

logger = logging.getLogger(__name__)


class TransactionIdentityReconciler:
    """Confirm a pending transaction's hash by scanning recent blocks."""

    def __init__(
        self,
        router: DualChannelRouter,
        config: ReconcilerConfig | None = None,
        *,
        metrics: FinalityMetrics | None = None,
    ) -> None:
        self._router = router
        self._config = config or ReconcilerConfig()
        self._metrics = metrics

    async def reconcile(
        self,
        pending: PendingTransaction,
        deadline_ms: int | None = None,
    ) -> VerifiedTransaction:
        """Return the on-chain identity of *pending*.

        Polls the read channel until a transaction from ``pending.sender``
        with ``pending.nonce`` is found or *deadline_ms* elapses. On
        deadline the candidate hash is kept and the result is flagged
        ``degraded``.
        """
        if deadline_ms is None:
            deadline_ms = self._config.deadline_ms
        if self._metrics is not None:
            with self._metrics.track_reconcile():
                return await self._reconcile(pending, deadline_ms)
        return await self._reconcile(pending, deadline_ms)

    async def _reconcile(self, pending: PendingTransaction, deadline_ms: int) -> VerifiedTransaction:
        deadline = time.monotonic() + deadline_ms / 1000
        scanned: set[int] = set()
        floor: int | None = None
        rounds = 0

        while True:
            rounds += 1
            try:
                found = await self._check_candidate(pending)
                if found is None:
                    latest = await self._fetch_block("latest")
                    if latest is not None:
                        if floor is None:
                            floor = max(latest.number - self._config.lookback_blocks, 0)
                        found = await self._scan(pending, latest, floor, scanned)
            except FinalityError as exc:
                if not exc.is_retryable:
                    raise
                logger.debug("Reconcile round %d for %s failed: %s", rounds, pending.candidate_hash, exc.message)
                found = None

            if found is not None:
                return self._verified(pending, found)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self._config.poll_interval, remaining))

        logger.warning(
            "Reconciliation deadline (%d ms) passed for %s nonce=%d after %d rounds, "
            "keeping agent hash %s (degraded)",
            deadline_ms,
            pending.sender,
            pending.nonce,
            rounds,
            pending.candidate_hash,
        )
        if self._metrics is not None:
            self._metrics.record_degraded_reconciliation()
        return VerifiedTransaction(
            sender=pending.sender,
            nonce=pending.nonce,
            confirmed_hash=pending.candidate_hash,
            candidate_hash=pending.candidate_hash,
            degraded=True,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _check_candidate(self, pending: PendingTransaction) -> LedgerTransaction | None:
        """Accept the candidate hash only if the ledger says it is ours."""
        data = await self._router.dispatch("eth_getTransactionByHash", [pending.candidate_hash])
        if not data:
            return None
        tx = LedgerTransaction.from_dict(data)
        if tx.block_number is None or not tx.matches(pending.sender, pending.nonce):
            return None
        return tx

    async def _fetch_block(self, block: int | str) -> Block | None:
        tag = to_hex(block) if isinstance(block, int) else block
        data = await self._router.dispatch("eth_getBlockByNumber", [tag, True])
        return Block.from_dict(data) if data else None

    async def _scan(
        self,
        pending: PendingTransaction,
        latest: Block,
        floor: int,
        scanned: set[int],
    ) -> LedgerTransaction | None:
        """Scan *latest* and every earlier block down to *floor* not seen yet."""
        if latest.number not in scanned:
            scanned.add(latest.number)
            found = latest.find(pending.sender, pending.nonce)
            if found is not None:
                return found

        for number in range(latest.number - 1, floor - 1, -1):
            if number in scanned:
                continue
            block = await self._fetch_block(number)
            scanned.add(number)
            if block is None:
                continue
            found = block.find(pending.sender, pending.nonce)
            if found is not None:
                return found
        return None

    def _verified(self, pending: PendingTransaction, tx: LedgerTransaction) -> VerifiedTransaction:
        verified = VerifiedTransaction(
            sender=pending.sender,
            nonce=pending.nonce,
            confirmed_hash=tx.hash,
            candidate_hash=pending.candidate_hash,
        )
        if verified.hash_mismatch:
            logger.warning(
                "Hash mismatch for %s nonce=%d: agent returned %s, ledger has %s",
                pending.sender,
                pending.nonce,
                pending.candidate_hash,
                tx.hash,
            )
            if self._metrics is not None:
                self._metrics.record_hash_mismatch()
        else:
            logger.info("Reconciled %s at block %d", tx.hash, hex_to_int(tx.block_number))
        return verified
