"""Webhook delivery — signed verification results with retries.

The body is serialized once, compactly, and those exact bytes are both
sent and signed. When a shared secret is configured the request carries
``X-Conduit-Signature: <hex HMAC-SHA256 of the body>``.

Delivery is best-effort: failures are logged and reported through the
return value, never raised.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from conduit_finality.config.settings import WebhookSettings

if TYPE_CHECKING:
    from conduit_finality.metrics.collector import FinalityMetrics
    from conduit_finality.payments.models import VerificationResult

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Conduit-Signature"


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of *body* keyed with *secret*."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    """Constant-time check of a received signature (for webhook consumers)."""
    return hmac.compare_digest(sign_payload(body, secret), signature.strip().lower())


def build_payload(
    result: VerificationResult,
    *,
    order_id: str = "",
    email: str = "",
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Verification result wire fields plus caller metadata and a timestamp."""
    payload = result.to_wire()
    payload.update(
        {
            "orderId": order_id,
            "email": email,
            "metadata": metadata or {},
            "timestamp": datetime.now(UTC).isoformat(),
        }
    )
    return payload


def encode_payload(payload: dict[str, Any]) -> bytes:
    """Compact JSON encoding; the returned bytes are what gets signed."""
    return json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")


class WebhookDispatcher:
    """POST verification results to a merchant endpoint."""

    def __init__(
        self,
        config: WebhookSettings | None = None,
        *,
        metrics: FinalityMetrics | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or WebhookSettings()
        self._metrics = metrics
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def default_url(self) -> str:
        """Webhook URL from settings ('' when unset)."""
        return self._config.url

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(timeout=self._config.timeout, transport=self._transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def dispatch(
        self,
        result: VerificationResult,
        *,
        url: str = "",
        order_id: str = "",
        email: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Deliver *result* to *url* (or the configured URL).

        Returns:
            True if the endpoint answered 2xx within the retry budget.
        """
        target = url or self._config.url
        if not target:
            logger.debug("No webhook URL configured, skipping dispatch for %s", result.record_id)
            return False
        if self._client is None:
            logger.warning("Webhook dispatcher not connected, dropping result for %s", result.record_id)
            self._record("failed")
            return False

        body = encode_payload(build_payload(result, order_id=order_id, email=email, metadata=metadata))
        headers = {"Content-Type": "application/json"}
        if self._config.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, self._config.secret)

        delivered = await self._send(target, body, headers)
        self._record("delivered" if delivered else "failed")
        return delivered

    async def _send(self, url: str, body: bytes, headers: dict[str, str]) -> bool:
        """Send *body* with retries. Returns whether delivery succeeded."""
        if self._client is None:
            return False

        retries = self._config.max_retries
        for attempt in range(retries + 1):
            try:
                resp = await self._client.post(url, content=body, headers=headers)
                if 200 <= resp.status_code < 300:
                    logger.info("Webhook delivered to %s (%d)", url, resp.status_code)
                    return True
                logger.warning(
                    "Webhook %s returned %d (attempt %d/%d)",
                    url,
                    resp.status_code,
                    attempt + 1,
                    retries + 1,
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "Webhook %s error: %s (attempt %d/%d)",
                    url,
                    exc,
                    attempt + 1,
                    retries + 1,
                )
            if attempt < retries:
                await asyncio.sleep(self._config.retry_delay)

        logger.warning("Webhook delivery to %s failed after %d attempts", url, retries + 1)
        return False

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_webhook(outcome)
