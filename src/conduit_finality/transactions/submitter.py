"""Transaction submitter — complete an intent and hand it to the signing agent.

Fills in nonce, gas price and gas limit, then sends through the wallet
channel and returns at once with the agent-returned hash. Waiting for the
transaction to land is the reconciler's and the poller's job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from conduit_finality.chain.router import PENDING_NONCE_METHOD
from conduit_finality.chain.rpc.models import hex_to_int
from conduit_finality.config.settings import SubmitterConfig
from conduit_finality.errors.chain_errors import GasEstimationError, WalletChannelError
from conduit_finality.errors.definitions import ErrAgentNotInitialized
from conduit_finality.errors.finality_errors import FinalityError
from conduit_finality.transactions.models import OperationType, PendingTransaction, TransactionIntent

if TYPE_CHECKING:
    from conduit_finality.chain.router import DualChannelRouter
    from conduit_finality.metrics.collector import FinalityMetrics

logger = logging.getLogger(__name__)


class TransactionSubmitter:
    """Build, gas-price and submit transactions through the signing agent.

    Signing rejections (:class:`SigningRejectedError`) and other agent
    failures propagate unchanged and are never retried.
    """

    def __init__(
        self,
        router: DualChannelRouter,
        config: SubmitterConfig | None = None,
        *,
        metrics: FinalityMetrics | None = None,
    ) -> None:
        self._router = router
        self._config = config or SubmitterConfig()
        self._metrics = metrics

    async def submit(self, intent: TransactionIntent) -> PendingTransaction:
        """Complete *intent*, send it, and return the pending transaction.

        Raises:
            ConfigurationError: If no signing agent is connected.
            GasEstimationError: If no gas limit could be determined.
            SigningRejectedError: If the user declined to sign.
            WalletChannelError: On any other signing agent failure.
        """
        if self._metrics is not None:
            with self._metrics.track_submit():
                return await self._submit(intent)
        return await self._submit(intent)

    async def _submit(self, intent: TransactionIntent) -> PendingTransaction:
        sender, tx = await self._build(intent)

        tx_hash = await self._router.dispatch("eth_sendTransaction", [tx.to_rpc(sender)])
        if not tx_hash:
            msg = "signing agent returned no transaction hash"
            raise WalletChannelError(msg)

        pending = PendingTransaction(sender=sender, nonce=tx.nonce or 0, candidate_hash=str(tx_hash))
        logger.info(
            "Submitted %s tx from %s nonce=%d: %s",
            tx.operation.value,
            sender,
            pending.nonce,
            pending.candidate_hash,
        )
        return pending

    async def build_transaction(self, intent: TransactionIntent) -> TransactionIntent:
        """Return a copy of *intent* with nonce, gas price and gas limit set.

        Nothing is sent; useful for previews and operator tooling.
        """
        _, tx = await self._build(intent)
        return tx

    async def _build(self, intent: TransactionIntent) -> tuple[str, TransactionIntent]:
        sender = await self._resolve_sender()

        nonce = intent.nonce
        if nonce is None:
            nonce = hex_to_int(await self._router.dispatch(PENDING_NONCE_METHOD, [sender]))

        gas_price = intent.gas_price
        if gas_price is None:
            gas_price = await self._resolve_gas_price()

        gas_limit = intent.gas_limit
        if gas_limit is None:
            gas_limit = await self._resolve_gas_limit(intent, sender)

        return sender, intent.with_fields(nonce=nonce, gas_price=gas_price, gas_limit=gas_limit)

    # ------------------------------------------------------------------
    # Resolution steps
    # ------------------------------------------------------------------

    async def _resolve_sender(self) -> str:
        wallet = self._router.wallet
        if wallet is None or not wallet.is_connected:
            raise ErrAgentNotInitialized
        return await wallet.get_address()

    async def _resolve_gas_price(self) -> int:
        """Live gas price from the read channel, floored at the configured minimum."""
        floor = self._config.min_gas_price_wei
        try:
            live = hex_to_int(await self._router.dispatch("eth_gasPrice"))
        except FinalityError as exc:
            logger.warning("Gas price query failed, using minimum %d wei: %s", floor, exc.message)
            return floor
        if live < floor:
            logger.debug("Live gas price %d below minimum, raising to %d", live, floor)
            return floor
        return live

    async def _resolve_gas_limit(self, intent: TransactionIntent, sender: str) -> int:
        """Estimate on the read channel, then the wallet, then a tiered fallback."""
        call = {
            "from": sender,
            "to": intent.to,
            "data": intent.data or "0x",
            "value": hex(intent.value),
        }

        attempts = self._config.estimate_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                estimate = hex_to_int(await self._router.dispatch("eth_estimateGas", [call]))
                return self._buffered(estimate)
            except FinalityError as exc:
                logger.debug("Read-channel gas estimate attempt %d/%d failed: %s", attempt, attempts, exc.message)
                if attempt < attempts:
                    await asyncio.sleep(self._config.estimate_backoff * attempt)

        try:
            estimate = hex_to_int(await self._router.wallet_request("eth_estimateGas", [call]))
            return self._buffered(estimate)
        except FinalityError as exc:
            logger.debug("Wallet-channel gas estimate failed: %s", exc.message)

        return self._fallback_gas(intent.operation)

    def _buffered(self, estimate: int) -> int:
        return estimate * (100 + self._config.gas_buffer_percent) // 100

    def _fallback_gas(self, operation: OperationType) -> int:
        if operation is OperationType.DEPOSIT:
            fallback = self._config.deposit_gas_fallback
        else:
            fallback = self._config.approval_gas_fallback
        if fallback <= 0:
            msg = f"gas estimation failed for {operation.value} operation and no fallback is configured"
            raise GasEstimationError(msg)
        logger.warning("Gas estimation failed, using %s fallback of %d", operation.value, fallback)
        return fallback
