"""Dual-channel router — wallet calls vs. read calls.

Every ledger RPC call is classified once:

- WALLET methods need the user's signing agent (signing, sending, account
  access, and the sender's *pending* nonce).
- Everything else is a READ method and goes to the neutral JSON-RPC
  endpoint, which stays reachable when the signing agent does not (for
  example after the host app was backgrounded on a phone).

The pending nonce is a wallet method: it must come from the same source
that later validates the transaction, otherwise the agent rejects it with
"invalid nonce".
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING, Any, Protocol

from conduit_finality.errors.chain_errors import WalletChannelError

if TYPE_CHECKING:
    from conduit_finality.metrics.collector import FinalityMetrics
    from conduit_finality.wallet.agent import SigningAgent

logger = logging.getLogger(__name__)

# Router-level alias for "eth_getTransactionCount(address, 'pending')" on
# the wallet channel.
PENDING_NONCE_METHOD = "get_pending_nonce"

# Methods that request a signature; the agent must never see two at once.
SIGNING_METHODS = frozenset(
    {
        "eth_sendTransaction",
        "eth_signTransaction",
        "personal_sign",
        "eth_sign",
        "eth_signTypedData",
        "eth_signTypedData_v1",
        "eth_signTypedData_v3",
        "eth_signTypedData_v4",
    }
)

WALLET_METHODS = SIGNING_METHODS | frozenset(
    {
        PENDING_NONCE_METHOD,
        "eth_accounts",
        "eth_requestAccounts",
        "wallet_switchEthereumChain",
        "wallet_addEthereumChain",
    }
)

READ_METHODS = frozenset(
    {
        "eth_chainId",
        "eth_getBalance",
        "eth_getCode",
        "eth_getStorageAt",
        "eth_call",
        "eth_estimateGas",
        "eth_gasPrice",
        "eth_feeHistory",
        "eth_maxPriorityFeePerGas",
        "eth_blockNumber",
        "eth_getBlockByNumber",
        "eth_getBlockByHash",
        "eth_getTransactionByHash",
        "eth_getTransactionReceipt",
        "eth_getTransactionCount",
        "eth_getLogs",
        "eth_sendRawTransaction",
    }
)


class Channel(enum.StrEnum):
    """Destination of a dispatched call."""

    WALLET = "wallet"
    READ = "read"


class ReadChannel(Protocol):
    """Anything that can answer a raw JSON-RPC request."""

    async def request(self, method: str, params: list[Any] | None = None) -> Any: ...


def is_wallet_method(method: str) -> bool:
    """Whether *method* must go through the signing agent."""
    return method in WALLET_METHODS


def channel_for(method: str) -> Channel:
    """Classify *method*: wallet set first, everything else is a read."""
    return Channel.WALLET if is_wallet_method(method) else Channel.READ


class DualChannelRouter:
    """Dispatch ledger RPC calls to the wallet or the read channel.

    Usage::

        router = DualChannelRouter(read=rpc_client, wallet=agent)
        nonce = await router.dispatch("get_pending_nonce", [sender])
        receipt = await router.dispatch("eth_getTransactionReceipt", [tx_hash])
    """

    def __init__(
        self,
        read: ReadChannel,
        wallet: SigningAgent | None = None,
        *,
        metrics: FinalityMetrics | None = None,
    ) -> None:
        self._read = read
        self._wallet = wallet
        self._metrics = metrics
        self._signing_lock = asyncio.Lock()

    @property
    def read(self) -> ReadChannel:
        """The read channel."""
        return self._read

    @property
    def wallet(self) -> SigningAgent | None:
        """The signing agent, if one is attached."""
        return self._wallet

    def attach_wallet(self, wallet: SigningAgent | None) -> None:
        """Attach (or detach with None) the signing agent for this session."""
        self._wallet = wallet

    async def dispatch(self, method: str, params: list[Any] | None = None) -> Any:
        """Route *method* to its channel and return the raw result.

        Wallet-channel failures propagate unchanged; a wallet method is
        never retried on the read channel.

        Raises:
            WalletChannelError: If a wallet method is dispatched with no
                agent attached, or the agent fails.
            SigningRejectedError: If the user declines a signature.
            RPCError: On read channel failure.
        """
        params = list(params or [])
        channel = channel_for(method)

        if channel is Channel.WALLET:
            return await self.wallet_request(method, params)

        if method not in READ_METHODS:
            logger.debug("Unclassified method %s, routing to read channel", method)
        else:
            logger.debug("Routing %s to read channel", method)
        self._count(Channel.READ)
        return await self._read.request(method, params)

    async def wallet_request(self, method: str, params: list[Any] | None = None) -> Any:
        """Send *method* to the signing agent regardless of its classification.

        Used for secondary estimates (``eth_estimateGas``) that normally go
        to the read channel.
        """
        params = list(params or [])
        wallet = self._wallet
        if wallet is None or not wallet.is_connected:
            msg = f"signing agent unavailable for {method}"
            raise WalletChannelError(msg, status_code=503)

        if method == PENDING_NONCE_METHOD:
            method, params = "eth_getTransactionCount", [params[0], "pending"]

        logger.debug("Routing %s to wallet channel (%s)", method, wallet.name)
        self._count(Channel.WALLET)
        if method in SIGNING_METHODS:
            async with self._signing_lock:
                return await wallet.request(method, params)
        return await wallet.request(method, params)

    def _count(self, channel: Channel) -> None:
        if self._metrics is not None:
            self._metrics.record_rpc_request(channel.value)
