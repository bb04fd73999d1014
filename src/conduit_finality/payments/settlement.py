"""Settlement backend client — query payment records by contract id.

``GET {url}/api/contracts?contractid=...&sellerWalletId=...`` answers
``{"count": n, "results": [...]}``. An empty answer means the record has
not reached the backend yet.
"""

from __future__ import annotations

import logging

import httpx

from conduit_finality.errors.definitions import ErrSettlementURLMissing
from conduit_finality.errors.finality_errors import ConfigurationError
from conduit_finality.errors.payment_errors import SettlementQueryError
from conduit_finality.payments.models import SettlementRecord

logger = logging.getLogger(__name__)

CONTRACTS_PATH = "/api/contracts"


class SettlementClient:
    """Async client for the settlement query endpoint.

    Usage::

        client = SettlementClient("https://app.example.com", api_key="...")
        await client.connect()
        record = await client.get_record("contract-1", seller_wallet_id="0xabc")
        await client.close()
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ErrSettlementURLMissing
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self._url

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["X-API-Key"] = self._api_key
        self._client = httpx.AsyncClient(
            base_url=self._url,
            headers=headers,
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
        return self._client is not None

    async def get_record(self, record_id: str, *, seller_wallet_id: str | None = None) -> SettlementRecord | None:
        """Fetch the settlement record for *record_id*.

        Returns:
            The first matching record, or None if none exists yet.

        Raises:
            SettlementQueryError: On transport failure, HTTP >= 400 or a
                malformed body.
        """
        client = self._ensure_connected()
        params = {"contractid": record_id}
        if seller_wallet_id:
            params["sellerWalletId"] = seller_wallet_id

        try:
            response = await client.get(CONTRACTS_PATH, params=params)
        except httpx.HTTPError as exc:
            raise SettlementQueryError(f"settlement query for {record_id} failed: {exc}") from exc

        if response.status_code >= 400:
            raise SettlementQueryError(
                f"settlement query for {record_id} failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise SettlementQueryError(f"settlement query for {record_id} returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise SettlementQueryError(f"settlement query for {record_id} returned {type(body).__name__}")

        results = body.get("results") or []
        if not body.get("count", len(results)) or not results:
            logger.debug("No settlement record for %s yet", record_id)
            return None
        try:
            return SettlementRecord.from_dict(results[0])
        except (ValueError, TypeError, AttributeError, ArithmeticError) as exc:
            raise SettlementQueryError(f"settlement query for {record_id} returned a malformed record: {exc}") from exc

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Settlement client not connected. Call connect() first."
            raise ConfigurationError(msg, code="settlement-not-connected")
        return self._client
