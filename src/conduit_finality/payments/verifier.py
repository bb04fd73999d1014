"""Payment verifier — independent re-check of a reported settlement.

State machine per ``verify`` call::

    QUERYING ──(no record / no ledger address / pending state)──> QUERYING
    QUERYING ──(failed state, e.g. NEVER_FUNDED)────────────────> FAILED
    QUERYING ──(settled state with ledger address)──────────────> SECURITY_CHECK
    SECURITY_CHECK ──(all checks pass)──> VERIFIED
    SECURITY_CHECK ──(any check fails)──> REJECTED
    QUERYING ──(deadline)───────────────> TIMEOUT

FAILED, REJECTED and TIMEOUT raise typed errors; no further query is sent
after a terminal state. Transient query failures are retried until the
deadline.

The security check only runs while a checkout session is open: without a
buyer expectation any settled record with a ledger address is accepted.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol

from conduit_finality.config.settings import VerifierConfig
from conduit_finality.errors.definitions import ErrSessionActive
from conduit_finality.errors.finality_errors import FinalityError
from conduit_finality.errors.payment_errors import (
    PaymentFailedError,
    PaymentRejectedError,
    VerificationTimeoutError,
)
from conduit_finality.payments.currency import normalize_unit
from conduit_finality.payments.models import (
    CheckoutParams,
    ExpectedPayment,
    LifecycleClass,
    SettlementRecord,
    VerificationResult,
)

if TYPE_CHECKING:
    from conduit_finality.metrics.collector import FinalityMetrics
    from conduit_finality.notifications.webhook import WebhookDispatcher

logger = logging.getLogger(__name__)

COUNTERPARTY_MISMATCH = "counterparty mismatch"
AMOUNT_MISMATCH = "amount mismatch"
UNIT_MISMATCH = "unit mismatch"


class VerificationState(enum.StrEnum):
    """States of a verification run."""

    QUERYING = "querying"
    SECURITY_CHECK = "security_check"
    VERIFIED = "verified"
    REJECTED = "rejected"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class VerificationAttempt:
    """What one query iteration saw, passed to the observer.

    ``state`` is where the iteration leads: QUERYING (poll again), FAILED
    or SECURITY_CHECK.
    """

    attempt: int
    elapsed: float
    state: VerificationState
    record: SettlementRecord | None = None
    error: Exception | None = None


Observer = Callable[[VerificationAttempt], Any]


class SettlementSource(Protocol):
    """Anything that can look up a settlement record."""

    async def get_record(
        self, record_id: str, *, seller_wallet_id: str | None = None
    ) -> SettlementRecord | None: ...


def security_check(
    record: SettlementRecord,
    expected: ExpectedPayment,
    *,
    tolerance: Decimal = Decimal("0.001"),
) -> list[str]:
    """Compare *record* with *expected*; return every failing check in order.

    Order: counterparty, amount, unit. An empty list means the record
    matches.
    """
    mismatches: list[str] = []
    if record.counterparty.lower() != expected.counterparty.lower():
        mismatches.append(COUNTERPARTY_MISMATCH)
    if abs(record.display_amount - expected.amount) > tolerance:
        mismatches.append(AMOUNT_MISMATCH)
    if record.display_unit != normalize_unit(expected.unit):
        mismatches.append(UNIT_MISMATCH)
    return mismatches


class PaymentVerifier:
    """Poll the settlement backend and verify a record against the checkout.

    One checkout session at a time: ``open`` → ``verify`` → ``cleanup``.
    """

    def __init__(
        self,
        settlement: SettlementSource,
        config: VerifierConfig | None = None,
        *,
        webhook: WebhookDispatcher | None = None,
        metrics: FinalityMetrics | None = None,
    ) -> None:
        self._settlement = settlement
        self._config = config or VerifierConfig()
        self._tolerance = Decimal(self._config.amount_tolerance)
        self._webhook = webhook
        self._metrics = metrics
        self._session: CheckoutParams | None = None
        self._expected: ExpectedPayment | None = None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """Whether a checkout session is open."""
        return self._session is not None

    @property
    def expected(self) -> ExpectedPayment | None:
        """The buyer expectation of the open session."""
        return self._expected

    def open(self, params: CheckoutParams) -> ExpectedPayment:
        """Start a checkout session and hold its expectation.

        Raises:
            ConfigurationError: If a session is already open.
            ValueError: If the amount is not positive or the counterparty
                is missing.
        """
        if self._session is not None:
            raise ErrSessionActive
        if not params.counterparty:
            msg = "counterparty address is required"
            raise ValueError(msg)
        expected = params.expectation()
        if expected.amount <= 0:
            msg = f"amount must be positive, got {params.amount!r}"
            raise ValueError(msg)

        self._session = params
        self._expected = expected
        logger.info(
            "Checkout opened: %s %s to %s (order %s)",
            expected.amount,
            expected.unit,
            expected.counterparty,
            params.order_id or "-",
        )
        return expected

    def cleanup(self) -> None:
        """Clear the expectation and session metadata."""
        self._session = None
        self._expected = None

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(
        self,
        record_id: str,
        seller_wallet_id: str | None = None,
        observer: Observer | None = None,
    ) -> VerificationResult:
        """Poll until *record_id* is verified or a terminal error occurs.

        Raises:
            PaymentFailedError: The record is in a failed lifecycle state.
            PaymentRejectedError: The record does not match the expectation.
            VerificationTimeoutError: Still unsettled at the deadline.
        """
        if self._metrics is not None:
            with self._metrics.track_verify():
                result = await self._verify(record_id, seller_wallet_id, observer)
        else:
            result = await self._verify(record_id, seller_wallet_id, observer)

        await self._notify(result)
        return result

    async def _verify(
        self,
        record_id: str,
        seller_wallet_id: str | None,
        observer: Observer | None,
    ) -> VerificationResult:
        start = time.monotonic()
        deadline = start + self._config.deadline
        attempt = 0

        while True:
            attempt += 1
            record: SettlementRecord | None = None
            error: Exception | None = None
            try:
                record = await self._settlement.get_record(record_id, seller_wallet_id=seller_wallet_id)
            except FinalityError as exc:
                if not exc.is_retryable:
                    raise
                logger.debug("Settlement query %d for %s failed: %s", attempt, record_id, exc.message)
                error = exc

            state = self._next_state(record)
            await self._observe(
                observer,
                VerificationAttempt(
                    attempt=attempt,
                    elapsed=time.monotonic() - start,
                    state=state,
                    record=record,
                    error=error,
                ),
            )

            if record is not None and state is VerificationState.FAILED:
                logger.warning("Payment %s failed: state %s", record_id, record.lifecycle_state)
                self._record("failed")
                raise PaymentFailedError(record)

            if record is not None and state is VerificationState.SECURITY_CHECK:
                return self._check(record)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self._config.interval, remaining))

        logger.warning("Payment %s not settled after %d attempts", record_id, attempt)
        self._record("timeout")
        raise VerificationTimeoutError(record_id, attempts=attempt, deadline=self._config.deadline)

    @staticmethod
    def _next_state(record: SettlementRecord | None) -> VerificationState:
        if record is None:
            return VerificationState.QUERYING
        lifecycle = record.lifecycle_class
        if lifecycle is LifecycleClass.FAILED:
            return VerificationState.FAILED
        if lifecycle is LifecycleClass.PENDING or not record.ledger_address:
            return VerificationState.QUERYING
        return VerificationState.SECURITY_CHECK

    def _check(self, record: SettlementRecord) -> VerificationResult:
        if self._expected is None:
            logger.info("No buyer expectation held, accepting %s without security check", record.record_id)
        else:
            mismatches = security_check(record, self._expected, tolerance=self._tolerance)
            if mismatches:
                logger.warning(
                    "Payment %s rejected: %s (expected %s %s to %s, got %s %s to %s)",
                    record.record_id,
                    ", ".join(mismatches),
                    self._expected.amount,
                    self._expected.unit,
                    self._expected.counterparty,
                    record.display_amount,
                    record.display_unit,
                    record.counterparty,
                )
                self._record("rejected")
                raise PaymentRejectedError(mismatches[0], mismatches=mismatches, record=record)

        result = VerificationResult.from_record(record)
        logger.info(
            "Payment %s verified: %s %s at %s",
            record.record_id,
            result.amount,
            result.unit,
            result.ledger_address,
        )
        self._record("verified")
        return result

    async def _observe(self, observer: Observer | None, attempt: VerificationAttempt) -> None:
        if observer is None:
            return
        try:
            outcome = observer(attempt)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Verification observer failed on attempt %d", attempt.attempt)

    async def _notify(self, result: VerificationResult) -> None:
        if self._webhook is None:
            return
        session = self._session
        url = (session.webhook_url if session else "") or self._webhook.default_url
        if not url:
            return
        try:
            await self._webhook.dispatch(
                result,
                url=url,
                order_id=session.order_id if session else "",
                email=session.email if session else "",
                metadata=session.metadata if session else None,
            )
        except Exception:
            logger.exception("Webhook dispatch for %s failed", result.record_id)

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_verification(outcome)
