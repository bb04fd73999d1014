"""Metrics collector — Prometheus counters and histograms.

Exposes:
- ``conduit_rpc_requests_total`` counter-vec  (channel)
- ``conduit_submit_histogram``
- ``conduit_reconcile_histogram``
- ``conduit_receipt_wait_histogram``
- ``conduit_verify_histogram``
- ``conduit_hash_mismatch_total``
- ``conduit_reconcile_degraded_total``
- ``conduit_verification_total`` counter-vec  (outcome)
- ``conduit_webhook_total`` counter-vec  (outcome)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "conduit"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`FinalityMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class FinalityMetrics:
    """High-level metrics for the submit / reconcile / confirm / verify flows.

    All histograms track operation duration in seconds.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._rpc_requests = self._collector.counter(
            f"{_PREFIX}_rpc_requests",
            "Ledger RPC requests dispatched, by channel",
            ("channel",),
        )
        self._submit = self._collector.histogram(
            f"{_PREFIX}_submit_histogram",
            "Duration of transaction submission through the signing agent",
        )
        self._reconcile = self._collector.histogram(
            f"{_PREFIX}_reconcile_histogram",
            "Duration of transaction identity reconciliation",
        )
        self._receipt_wait = self._collector.histogram(
            f"{_PREFIX}_receipt_wait_histogram",
            "Duration of receipt polling",
        )
        self._verify = self._collector.histogram(
            f"{_PREFIX}_verify_histogram",
            "Duration of settlement verification",
        )
        self._hash_mismatch = self._collector.counter(
            f"{_PREFIX}_hash_mismatch",
            "Agent-returned hashes that differed from the on-chain hash",
        )
        self._degraded = self._collector.counter(
            f"{_PREFIX}_reconcile_degraded",
            "Reconciliations that fell back to the agent-returned hash",
        )
        self._verification = self._collector.counter(
            f"{_PREFIX}_verification",
            "Verification outcomes",
            ("outcome",),
        )
        self._webhook = self._collector.counter(
            f"{_PREFIX}_webhook",
            "Webhook delivery outcomes",
            ("outcome",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Counters --

    def record_rpc_request(self, channel: str) -> None:
        """Count one RPC request dispatched to *channel* ('wallet' or 'read')."""
        self._rpc_requests.labels(channel=channel).inc()

    def record_hash_mismatch(self) -> None:
        """Count an agent hash that did not match the ledger."""
        self._hash_mismatch.inc()

    def record_degraded_reconciliation(self) -> None:
        """Count a reconciliation that fell back to the candidate hash."""
        self._degraded.inc()

    def record_verification(self, outcome: str) -> None:
        """Count a verification outcome (verified, rejected, failed, timeout)."""
        self._verification.labels(outcome=outcome).inc()

    def record_webhook(self, outcome: str) -> None:
        """Count a webhook delivery outcome (delivered, failed)."""
        self._webhook.labels(outcome=outcome).inc()

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_submit(self) -> Iterator[None]:
        """Track the duration of a transaction submission."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._submit.observe(time.monotonic() - start)

    @contextmanager
    def track_reconcile(self) -> Iterator[None]:
        """Track the duration of a reconciliation."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._reconcile.observe(time.monotonic() - start)

    @contextmanager
    def track_receipt_wait(self) -> Iterator[None]:
        """Track the duration of receipt polling."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._receipt_wait.observe(time.monotonic() - start)

    @contextmanager
    def track_verify(self) -> Iterator[None]:
        """Track the duration of a settlement verification."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._verify.observe(time.monotonic() - start)
