"""Signing agent adapters — one per concrete wallet integration.

- ``Eip1193Agent``: wraps any object exposing an EIP-1193 style
  ``request({"method": ..., "params": [...]})`` coroutine (browser bridge,
  WalletConnect relay, embedded wallet SDK).
- ``JsonRpcWalletAgent``: a node that manages the key itself and accepts
  ``eth_sendTransaction`` (development nodes, custodial signers).
- ``LocalAccountAgent``: signs with a local key via ``eth_account`` and
  broadcasts through the read channel (operator scripts and tests).
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address

from conduit_finality.chain.rpc.models import hex_to_int
from conduit_finality.errors.chain_errors import RPCError, WalletChannelError
from conduit_finality.wallet.agent import classify_agent_error

if TYPE_CHECKING:
    from conduit_finality.chain.rpc.client import JsonRpcClient

logger = logging.getLogger(__name__)


class Eip1193Provider(Protocol):
    """Shape of an EIP-1193 provider object."""

    async def request(self, args: dict[str, Any]) -> Any: ...


# ---------------------------------------------------------------------------
# EIP-1193 provider
# ---------------------------------------------------------------------------


class Eip1193Agent:
    """Adapt an EIP-1193 provider to :class:`SigningAgent`."""

    def __init__(self, provider: Eip1193Provider, *, name: str = "eip1193") -> None:
        self._provider: Eip1193Provider | None = provider
        self._name = name
        self._address: str | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_connected(self) -> bool:
        return self._provider is not None

    def disconnect(self) -> None:
        """Drop the provider (e.g. after the host app was backgrounded)."""
        self._provider = None
        self._address = None

    async def get_address(self) -> str:
        if self._address is None:
            accounts = await self.request("eth_accounts")
            if not accounts:
                accounts = await self.request("eth_requestAccounts")
            if not accounts:
                msg = f"{self._name}: no account connected"
                raise WalletChannelError(msg)
            self._address = str(accounts[0])
        return self._address

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        if self._provider is None:
            msg = f"{self._name}: provider disconnected"
            raise WalletChannelError(msg)
        try:
            return await self._provider.request({"method": method, "params": params or []})
        except Exception as exc:
            raise classify_agent_error(exc) from exc


# ---------------------------------------------------------------------------
# Node-managed key
# ---------------------------------------------------------------------------


class JsonRpcWalletAgent:
    """Agent backed by a JSON-RPC node that holds the signing key."""

    def __init__(
        self,
        url: str,
        *,
        address: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._address = address
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    @property
    def name(self) -> str:
        return "jsonrpc-wallet"

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_address(self) -> str:
        if self._address is None:
            accounts = await self.request("eth_accounts")
            if not accounts:
                msg = "wallet node exposes no accounts"
                raise WalletChannelError(msg)
            self._address = str(accounts[0])
        return self._address

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        if self._client is None:
            msg = "wallet node not connected. Call connect() first."
            raise WalletChannelError(msg, status_code=500)

        payload = {"jsonrpc": "2.0", "method": method, "params": params or [], "id": next(self._ids)}
        try:
            response = await self._client.post(self._url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise WalletChannelError(f"wallet {method} failed: {exc}") from exc

        error = body.get("error")
        if error:
            raise classify_agent_error(_RpcFailure(error))
        return body.get("result")


class _RpcFailure(Exception):
    """Carrier for a JSON-RPC error object, so it can be classified."""

    def __init__(self, error: dict[str, Any]) -> None:
        super().__init__(error.get("message", "wallet error"))
        self.code = error.get("code")


# ---------------------------------------------------------------------------
# Local key
# ---------------------------------------------------------------------------


class LocalAccountAgent:
    """Sign locally with ``eth_account`` and broadcast via the read channel.

    Only the methods the finality flow needs are supported:
    ``eth_accounts``, ``eth_getTransactionCount``, ``eth_estimateGas``,
    ``eth_sendTransaction``, ``eth_signTransaction`` and ``personal_sign``.
    """

    _SUPPORTED = frozenset(
        {
            "eth_accounts",
            "eth_requestAccounts",
            "eth_getTransactionCount",
            "eth_estimateGas",
            "eth_sendTransaction",
            "eth_signTransaction",
            "personal_sign",
        }
    )

    def __init__(self, private_key: str, rpc: JsonRpcClient, *, chain_id: int) -> None:
        self._account = Account.from_key(private_key)
        self._rpc = rpc
        self._chain_id = chain_id

    @property
    def name(self) -> str:
        return "local-account"

    @property
    def is_connected(self) -> bool:
        return self._rpc.is_connected

    async def get_address(self) -> str:
        return self._account.address

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        params = params or []
        if method not in self._SUPPORTED:
            msg = f"local account does not support {method}"
            raise WalletChannelError(msg, status_code=400)

        try:
            if method in ("eth_accounts", "eth_requestAccounts"):
                return [self._account.address]
            if method in ("eth_getTransactionCount", "eth_estimateGas"):
                return await self._rpc.request(method, params)
            if method == "personal_sign":
                signed_msg = self._account.sign_message(encode_defunct(text=str(params[0])))
                return "0x" + bytes(signed_msg.signature).hex()

            raw_tx, tx_hash = self._sign(params[0])
            if method == "eth_signTransaction":
                return raw_tx
            sent_hash = await self._rpc.send_raw_transaction(raw_tx)
            logger.debug("Local account broadcast %s (node returned %s)", tx_hash, sent_hash)
            return sent_hash or tx_hash
        except RPCError as exc:
            raise WalletChannelError(exc.message, rpc_code=exc.rpc_code) from exc

    def _sign(self, tx: dict[str, Any]) -> tuple[str, str]:
        """Sign a JSON-RPC style transaction object; return (raw, hash)."""
        to = tx.get("to")
        unsigned: dict[str, Any] = {
            "to": to_checksum_address(to) if to else None,
            "value": hex_to_int(tx.get("value")),
            "gas": hex_to_int(tx.get("gas")),
            "gasPrice": hex_to_int(tx.get("gasPrice")),
            "nonce": hex_to_int(tx.get("nonce")),
            "chainId": self._chain_id,
            "data": tx.get("data") or "0x",
        }
        if unsigned["to"] is None:
            del unsigned["to"]
        signed = self._account.sign_transaction(unsigned)
        return "0x" + bytes(signed.raw_transaction).hex(), "0x" + bytes(signed.hash).hex()
