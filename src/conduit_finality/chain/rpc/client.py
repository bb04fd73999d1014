"""JSON-RPC read channel — async client for a public ledger endpoint.

Provides the neutral, always-reachable channel for chain-state queries:
- eth_chainId, eth_blockNumber, eth_gasPrice, eth_estimateGas
- eth_getTransactionCount, eth_getBlockByNumber
- eth_getTransactionByHash, eth_getTransactionReceipt
- eth_sendRawTransaction (broadcast of locally signed transactions)
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from conduit_finality.chain.rpc.models import Block, LedgerTransaction, hex_to_int, to_hex
from conduit_finality.errors.chain_errors import RPCError
from conduit_finality.errors.finality_errors import ConfigurationError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """Async JSON-RPC client used as the read channel.

    One ``httpx.AsyncClient`` is shared by every caller, so a single
    instance may serve many concurrent flows.

    Usage::

        rpc = JsonRpcClient("https://mainnet.base.org")
        await rpc.connect()
        try:
            receipt = await rpc.request("eth_getTransactionReceipt", [tx_hash])
        finally:
            await rpc.close()
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: JSON-RPC endpoint URL.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._url = url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Channel protocol
    # ------------------------------------------------------------------

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        """Send a JSON-RPC request and return its ``result``.

        Raises:
            RPCError: On transport failure, non-2xx status, malformed
                response or a JSON-RPC ``error`` object.
            ConfigurationError: If the client is not connected.
        """
        client = self._ensure_connected()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }

        try:
            response = await client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            raise RPCError(f"RPC {method} failed: {exc}") from exc

        if response.status_code >= 400:
            raise RPCError(
                f"RPC {method} failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RPCError(f"RPC {method} returned invalid JSON") from exc

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RPCError(f"RPC {method} error: {message}", rpc_code=code)

        if not isinstance(body, dict) or "result" not in body:
            raise RPCError(f"RPC {method} response has no result")

        return body["result"]

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    async def chain_id(self) -> int:
        """Return the chain ID of the endpoint."""
        return hex_to_int(await self.request("eth_chainId"))

    async def block_number(self) -> int:
        """Return the latest block number."""
        return hex_to_int(await self.request("eth_blockNumber"))

    async def gas_price(self) -> int:
        """Return the current gas price in wei."""
        return hex_to_int(await self.request("eth_gasPrice"))

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        """Estimate gas for a transaction object."""
        return hex_to_int(await self.request("eth_estimateGas", [tx]))

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        """Return the transaction count (nonce) of *address* at *block*."""
        return hex_to_int(await self.request("eth_getTransactionCount", [address, block]))

    async def get_block(
        self,
        block: int | str = "latest",
        *,
        full_transactions: bool = True,
    ) -> Block | None:
        """Fetch a block by number or tag. Returns None if unknown."""
        tag = to_hex(block) if isinstance(block, int) else block
        data = await self.request("eth_getBlockByNumber", [tag, full_transactions])
        if not data:
            return None
        return Block.from_dict(data)

    async def get_transaction(self, tx_hash: str) -> LedgerTransaction | None:
        """Fetch a transaction by hash. Returns None if unknown."""
        data = await self.request("eth_getTransactionByHash", [tx_hash])
        if not data:
            return None
        return LedgerTransaction.from_dict(data)

    async def get_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Fetch the raw receipt object for *tx_hash* (None while pending)."""
        data = await self.request("eth_getTransactionReceipt", [tx_hash])
        return data or None

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """Broadcast a signed transaction and return its hash."""
        return str(await self.request("eth_sendRawTransaction", [raw_tx]))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "RPC client not connected. Call connect() first."
            raise ConfigurationError(msg, code="rpc-not-connected")
        return self._client
