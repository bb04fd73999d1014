"""FinalityEngine — session handle owning every finality component."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from conduit_finality.errors.definitions import ErrEngineNotInitialized, ErrSettlementURLMissing

if TYPE_CHECKING:
    import httpx

    from conduit_finality.chain.router import DualChannelRouter
    from conduit_finality.chain.rpc.client import JsonRpcClient
    from conduit_finality.config.settings import AppConfig
    from conduit_finality.metrics.collector import FinalityMetrics
    from conduit_finality.notifications.webhook import WebhookDispatcher
    from conduit_finality.payments.settlement import SettlementClient
    from conduit_finality.payments.verifier import PaymentVerifier
    from conduit_finality.transactions.models import Receipt, TransactionIntent, VerifiedTransaction
    from conduit_finality.transactions.nonce import StuckNonceReport
    from conduit_finality.transactions.poller import ConfirmationPoller
    from conduit_finality.transactions.reconciler import TransactionIdentityReconciler
    from conduit_finality.transactions.sequence import FundingResult, ProgressCallback
    from conduit_finality.transactions.submitter import TransactionSubmitter
    from conduit_finality.wallet.agent import SigningAgent

logger = logging.getLogger(__name__)


class FinalityEngine:
    """Owns the read channel, router, transaction components and verifier.

    One instance per session; there is no process-wide singleton. Tests and
    concurrent sessions construct their own engines.

    Usage::

        engine = FinalityEngine(AppConfig(), wallet=agent)
        await engine.initialize()
        try:
            verified, receipt = await engine.submit_and_confirm(intent)
        finally:
            await engine.close()
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        wallet: SigningAgent | None = None,
        rpc_transport: httpx.AsyncBaseTransport | None = None,
        settlement_transport: httpx.AsyncBaseTransport | None = None,
        webhook_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Finality configuration.
            wallet: Signing agent adapter selected for this session.
            rpc_transport: Optional httpx transport for the read channel.
            settlement_transport: Optional httpx transport for the settlement backend.
            webhook_transport: Optional httpx transport for webhook delivery.
        """
        self._config = config
        self._wallet = wallet
        self._rpc_transport = rpc_transport
        self._settlement_transport = settlement_transport
        self._webhook_transport = webhook_transport
        self._initialized = False

        self._rpc: JsonRpcClient | None = None
        self._router: DualChannelRouter | None = None
        self._metrics: FinalityMetrics | None = None
        self._submitter: TransactionSubmitter | None = None
        self._reconciler: TransactionIdentityReconciler | None = None
        self._poller: ConfirmationPoller | None = None
        self._settlement: SettlementClient | None = None
        self._webhook: WebhookDispatcher | None = None
        self._verifier: PaymentVerifier | None = None

    async def initialize(self) -> None:
        """Connect the channels and build every component.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from conduit_finality.chain.router import DualChannelRouter
        from conduit_finality.chain.rpc.client import JsonRpcClient
        from conduit_finality.metrics.collector import FinalityMetrics
        from conduit_finality.notifications.webhook import WebhookDispatcher
        from conduit_finality.transactions.poller import ConfirmationPoller
        from conduit_finality.transactions.reconciler import TransactionIdentityReconciler
        from conduit_finality.transactions.submitter import TransactionSubmitter

        if self._config.metrics.enabled:
            self._metrics = FinalityMetrics()

        chain = self._config.chain
        self._rpc = JsonRpcClient(chain.rpc_url, timeout=chain.timeout, transport=self._rpc_transport)
        await self._rpc.connect()

        self._router = DualChannelRouter(self._rpc, self._wallet, metrics=self._metrics)
        self._submitter = TransactionSubmitter(self._router, self._config.submitter, metrics=self._metrics)
        self._reconciler = TransactionIdentityReconciler(
            self._router, self._config.reconciler, metrics=self._metrics
        )
        self._poller = ConfirmationPoller(self._router, self._config.poller, metrics=self._metrics)

        self._webhook = WebhookDispatcher(
            self._config.webhook, metrics=self._metrics, transport=self._webhook_transport
        )
        await self._webhook.connect()

        # Verification is optional; it needs a settlement backend.
        settlement = self._config.settlement
        if settlement.url:
            from conduit_finality.payments.settlement import SettlementClient
            from conduit_finality.payments.verifier import PaymentVerifier

            self._settlement = SettlementClient(
                settlement.url,
                api_key=settlement.api_key,
                timeout=settlement.timeout,
                transport=self._settlement_transport,
            )
            await self._settlement.connect()
            self._verifier = PaymentVerifier(
                self._settlement,
                self._config.verifier,
                webhook=self._webhook,
                metrics=self._metrics,
            )

        self._initialized = True
        logger.info(
            "Finality engine initialized (rpc=%s, wallet=%s, settlement=%s)",
            chain.rpc_url,
            self._wallet.name if self._wallet else "none",
            settlement.url or "none",
        )

    async def close(self) -> None:
        """Close every connection. Can be called multiple times."""
        if not self._initialized:
            return

        self._verifier = None
        if self._settlement is not None:
            await self._settlement.close()
            self._settlement = None
        if self._webhook is not None:
            await self._webhook.close()
            self._webhook = None

        self._submitter = None
        self._reconciler = None
        self._poller = None
        self._router = None

        if self._rpc is not None:
            await self._rpc.close()
            self._rpc = None

        self._metrics = None
        self._initialized = False

    def reset(self) -> None:
        """Forget session state: detach the wallet and clear any open checkout."""
        self._wallet = None
        if self._router is not None:
            self._router.attach_wallet(None)
        if self._verifier is not None:
            self._verifier.cleanup()

    def connect_wallet(self, wallet: SigningAgent) -> None:
        """Select the signing agent adapter for this session."""
        self._wallet = wallet
        if self._router is not None:
            self._router.attach_wallet(wallet)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def wallet(self) -> SigningAgent | None:
        return self._wallet

    @property
    def metrics(self) -> FinalityMetrics | None:
        """Metrics (None if disabled or not initialized)."""
        return self._metrics

    @property
    def rpc(self) -> JsonRpcClient:
        if self._rpc is None:
            raise ErrEngineNotInitialized
        return self._rpc

    @property
    def router(self) -> DualChannelRouter:
        if self._router is None:
            raise ErrEngineNotInitialized
        return self._router

    @property
    def submitter(self) -> TransactionSubmitter:
        if self._submitter is None:
            raise ErrEngineNotInitialized
        return self._submitter

    @property
    def reconciler(self) -> TransactionIdentityReconciler:
        if self._reconciler is None:
            raise ErrEngineNotInitialized
        return self._reconciler

    @property
    def poller(self) -> ConfirmationPoller:
        if self._poller is None:
            raise ErrEngineNotInitialized
        return self._poller

    @property
    def webhook(self) -> WebhookDispatcher:
        if self._webhook is None:
            raise ErrEngineNotInitialized
        return self._webhook

    @property
    def verifier(self) -> PaymentVerifier:
        """The payment verifier.

        Raises:
            ConfigurationError: If the engine is not initialized or no
                settlement URL is configured.
        """
        if not self._initialized:
            raise ErrEngineNotInitialized
        if self._verifier is None:
            raise ErrSettlementURLMissing
        return self._verifier

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def submit_and_confirm(
        self,
        intent: TransactionIntent,
        *,
        raise_on_failure: bool = False,
    ) -> tuple[VerifiedTransaction, Receipt]:
        """Submit *intent*, reconcile its hash, then wait for the receipt.

        Steps run strictly in sequence; the receipt is polled for the
        reconciled hash, not the one the agent returned.
        """
        pending = await self.submitter.submit(intent)
        verified = await self.reconciler.reconcile(pending)
        receipt = await self.poller.wait_for_receipt(verified.confirmed_hash, raise_on_failure=raise_on_failure)
        return verified, receipt

    async def fund_escrow(
        self,
        token_address: str,
        escrow_address: str,
        amount: int,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> FundingResult:
        """Approve *amount* raw token units for the escrow, then deposit."""
        from conduit_finality.transactions.sequence import FundingSequence

        sequence = FundingSequence(self.submitter, self.reconciler, self.poller, on_progress=on_progress)
        return await sequence.run(token_address, escrow_address, amount)

    async def find_stuck_nonce(self, address: str) -> StuckNonceReport | None:
        """Report a stuck nonce for *address*, if any."""
        from conduit_finality.transactions.nonce import find_stuck_nonce

        return await find_stuck_nonce(self.router, address)

    async def health_check(self) -> dict[str, str]:
        """Check each channel.

        Returns:
            Component statuses ('ok', 'error', 'disconnected', 'not_configured',
            'not_initialized').
        """
        status = {
            "engine": "ok" if self._initialized else "not_initialized",
            "read_channel": "unknown",
            "wallet": "unknown",
            "settlement": "not_configured",
        }
        if not self._initialized:
            return status

        try:
            chain_id = await self.rpc.chain_id()
        except Exception as exc:
            logger.warning("Read channel health check failed: %s", exc)
            status["read_channel"] = "error"
        else:
            expected = self._config.chain.chain_id
            status["read_channel"] = "ok" if chain_id == expected else f"wrong_chain:{chain_id}"

        if self._wallet is None:
            status["wallet"] = "not_configured"
        else:
            status["wallet"] = "ok" if self._wallet.is_connected else "disconnected"

        if self._settlement is not None:
            status["settlement"] = "ok" if self._settlement.is_connected else "error"
        return status
