"""Tests for the payment verifier."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import httpx
import pytest

from conduit_finality.config.settings import VerifierConfig, WebhookSettings
from conduit_finality.errors.finality_errors import ConfigurationError, ErrorKind
from conduit_finality.errors.payment_errors import (
    PaymentFailedError,
    PaymentRejectedError,
    SettlementQueryError,
    VerificationTimeoutError,
)
from conduit_finality.metrics.collector import FinalityMetrics
from conduit_finality.notifications.webhook import WebhookDispatcher
from conduit_finality.payments.models import CheckoutParams, ExpectedPayment, SettlementRecord
from conduit_finality.payments.settlement import SettlementClient
from conduit_finality.payments.verifier import (
    AMOUNT_MISMATCH,
    COUNTERPARTY_MISMATCH,
    UNIT_MISMATCH,
    PaymentVerifier,
    VerificationAttempt,
    VerificationState,
    security_check,
)

SELLER = "0xAbC0000000000000000000000000000000000001"
ESCROW = "0x3333333333333333333333333333333333333333"


class FakeSettlement:
    """Settlement source returning scripted answers (last one repeats)."""

    def __init__(self, *answers: Any) -> None:
        self.answers = list(answers)
        self.queries: list[tuple[str, str | None]] = []

    async def get_record(self, record_id: str, *, seller_wallet_id: str | None = None):
        self.queries.append((record_id, seller_wallet_id))
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, BaseException):
            raise answer
        return answer


def _record(
    *,
    amount: str = "50000000",
    unit: str = "microUSDC",
    seller: str = SELLER,
    state: str = "ACTIVE",
    chain_address: str | None = ESCROW,
) -> SettlementRecord:
    return SettlementRecord.from_dict(
        {
            "contractid": "c-1",
            "sellerAddress": seller,
            "amount": amount,
            "currencySymbol": unit,
            "state": state,
            "chainAddress": chain_address,
        }
    )


def _verifier(settlement, **kwargs) -> PaymentVerifier:
    return PaymentVerifier(settlement, VerifierConfig(interval=0.01, deadline=0.3), **kwargs)


def _open(verifier: PaymentVerifier, amount: str = "50", **kwargs) -> None:
    verifier.open(CheckoutParams(amount=amount, counterparty=SELLER, **kwargs))


# ---------------------------------------------------------------------------
# Security check
# ---------------------------------------------------------------------------


class TestSecurityCheck:
    def _expected(self, amount: str = "50") -> ExpectedPayment:
        return ExpectedPayment(amount=Decimal(amount), unit="USDC", counterparty=SELLER)

    def test_match(self):
        assert security_check(_record(), self._expected()) == []

    def test_tolerance_boundary(self):
        assert security_check(_record(amount="50001000"), self._expected()) == []
        assert security_check(_record(amount="50001100"), self._expected()) == [AMOUNT_MISMATCH]

    def test_underpayment(self):
        assert security_check(_record(amount="49998000"), self._expected()) == [AMOUNT_MISMATCH]

    def test_counterparty_case_insensitive(self):
        assert security_check(_record(seller=SELLER.lower()), self._expected()) == []

    def test_unit_mismatch(self):
        assert security_check(_record(unit="microEURC"), self._expected()) == [UNIT_MISMATCH]

    def test_all_failures_in_order(self):
        record = _record(seller="0xBADACTOR", amount="1", unit="microEURC")
        assert security_check(record, self._expected()) == [COUNTERPARTY_MISMATCH, AMOUNT_MISMATCH, UNIT_MISMATCH]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TestSession:
    def test_open_holds_expectation(self):
        verifier = _verifier(FakeSettlement(None))
        expected = verifier.open(CheckoutParams(amount="50", counterparty=SELLER))
        assert verifier.is_active
        assert verifier.expected == expected
        assert expected.amount == Decimal("50")

    def test_second_session_rejected(self):
        verifier = _verifier(FakeSettlement(None))
        _open(verifier)
        with pytest.raises(ConfigurationError) as exc_info:
            _open(verifier)
        assert exc_info.value.code == "session-active"

    def test_cleanup_allows_new_session(self):
        verifier = _verifier(FakeSettlement(None))
        _open(verifier)
        verifier.cleanup()
        assert not verifier.is_active
        assert verifier.expected is None
        _open(verifier, amount="10")
        assert verifier.expected.amount == Decimal("10")

    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_non_positive_amount(self, amount):
        with pytest.raises(ValueError, match="positive"):
            _verifier(FakeSettlement(None)).open(CheckoutParams(amount=amount, counterparty=SELLER))

    def test_missing_counterparty(self):
        with pytest.raises(ValueError, match="counterparty"):
            _verifier(FakeSettlement(None)).open(CheckoutParams(amount="1", counterparty=""))


# ---------------------------------------------------------------------------
# Verification loop
# ---------------------------------------------------------------------------


class TestVerify:
    async def test_record_appears_after_empty_poll(self):
        settlement = FakeSettlement(None, _record(seller=SELLER.lower(), amount="50000100"))
        verifier = _verifier(settlement)
        _open(verifier)

        result = await verifier.verify("c-1", seller_wallet_id="w-1")

        assert result.verified
        assert result.amount == Decimal("50.0001")
        assert result.unit == "USDC"
        assert result.ledger_address == ESCROW
        assert len(settlement.queries) == 2
        assert settlement.queries[0] == ("c-1", "w-1")

    async def test_wrong_counterparty_rejected_without_further_polls(self):
        settlement = FakeSettlement(_record(seller="0xBADACTOR"))
        metrics = FinalityMetrics()
        verifier = _verifier(settlement, metrics=metrics)
        _open(verifier)

        with pytest.raises(PaymentRejectedError) as exc_info:
            await verifier.verify("c-1")

        err = exc_info.value
        assert err.reason == COUNTERPARTY_MISMATCH
        assert err.kind is ErrorKind.SECURITY
        assert err.record.counterparty == "0xBADACTOR"
        assert len(settlement.queries) == 1
        assert metrics.registry.get_sample_value("conduit_verification_total", {"outcome": "rejected"}) == 1.0

    async def test_amount_outside_tolerance_rejected(self):
        settlement = FakeSettlement(_record(amount="50001100"))
        verifier = _verifier(settlement)
        _open(verifier)
        with pytest.raises(PaymentRejectedError) as exc_info:
            await verifier.verify("c-1")
        assert exc_info.value.reason == AMOUNT_MISMATCH

    async def test_amount_within_tolerance_verified(self):
        verifier = _verifier(FakeSettlement(_record(amount="50001000")))
        _open(verifier)
        assert (await verifier.verify("c-1")).verified

    async def test_never_funded_fails_after_one_query(self):
        settlement = FakeSettlement(_record(state="NEVER_FUNDED", chain_address=None))
        verifier = _verifier(settlement)
        _open(verifier)
        with pytest.raises(PaymentFailedError) as exc_info:
            await verifier.verify("c-1")
        assert exc_info.value.kind is ErrorKind.BUSINESS
        assert len(settlement.queries) == 1

    async def test_waits_for_ledger_address(self):
        settlement = FakeSettlement(_record(chain_address=None), _record(chain_address=None), _record())
        verifier = _verifier(settlement)
        _open(verifier)
        result = await verifier.verify("c-1")
        assert result.ledger_address == ESCROW
        assert len(settlement.queries) == 3

    async def test_pending_state_keeps_polling(self):
        settlement = FakeSettlement(_record(state="CREATED"), _record(state="FUNDED"))
        verifier = _verifier(settlement)
        _open(verifier)
        assert (await verifier.verify("c-1")).lifecycle_state == "FUNDED"
        assert len(settlement.queries) == 2

    async def test_timeout(self):
        settlement = FakeSettlement(None)
        verifier = PaymentVerifier(settlement, VerifierConfig(interval=0.01, deadline=0.05))
        _open(verifier)
        with pytest.raises(VerificationTimeoutError) as exc_info:
            await verifier.verify("c-1")
        assert exc_info.value.kind is ErrorKind.TIMEOUT
        assert exc_info.value.attempts == len(settlement.queries)
        assert exc_info.value.attempts > 1

    async def test_transient_errors_retried(self):
        settlement = FakeSettlement(SettlementQueryError("503"), _record())
        verifier = _verifier(settlement)
        _open(verifier)
        assert (await verifier.verify("c-1")).verified
        assert len(settlement.queries) == 2

    async def test_malformed_record_retried_until_valid(self):
        bad = {"count": 1, "results": [{"contractid": "c-1", "sellerAddress": SELLER, "amount": "n/a"}]}
        good = {
            "count": 1,
            "results": [
                {
                    "contractid": "c-1",
                    "sellerAddress": SELLER,
                    "amount": "50000000",
                    "currencySymbol": "microUSDC",
                    "state": "ACTIVE",
                    "chainAddress": ESCROW,
                }
            ],
        }
        bodies = [bad, bad, good]

        def handler(request):
            return httpx.Response(200, json=bodies.pop(0) if len(bodies) > 1 else bodies[0])

        client = SettlementClient("https://settle.test", transport=httpx.MockTransport(handler))
        await client.connect()
        seen: list[VerificationAttempt] = []
        verifier = _verifier(client)
        _open(verifier)

        result = await verifier.verify("c-1", observer=seen.append)
        await client.close()

        assert result.verified
        assert [type(a.error) for a in seen[:2]] == [SettlementQueryError, SettlementQueryError]
        assert seen[2].state is VerificationState.SECURITY_CHECK

    async def test_malformed_record_until_deadline_times_out(self):
        body = {"count": 1, "results": [{"contractid": "c-1", "amount": "NaN"}]}
        client = SettlementClient(
            "https://settle.test", transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body))
        )
        await client.connect()
        verifier = PaymentVerifier(client, VerifierConfig(interval=0.01, deadline=0.05))
        with pytest.raises(VerificationTimeoutError):
            await verifier.verify("c-1")
        await client.close()

    async def test_configuration_error_not_retried(self):
        settlement = FakeSettlement(ConfigurationError("not connected"))
        with pytest.raises(ConfigurationError):
            await _verifier(settlement).verify("c-1")
        assert len(settlement.queries) == 1

    async def test_no_expectation_accepts_settled_record(self):
        verifier = _verifier(FakeSettlement(_record(seller="0xanyone", amount="1")))
        result = await verifier.verify("c-1")
        assert result.verified
        assert result.counterparty == "0xanyone"


# ---------------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------------


class TestObserver:
    async def test_sees_each_iteration(self):
        seen: list[VerificationAttempt] = []
        verifier = _verifier(FakeSettlement(None, _record(chain_address=None), _record()))
        _open(verifier)

        await verifier.verify("c-1", observer=seen.append)

        assert [a.attempt for a in seen] == [1, 2, 3]
        assert [a.state for a in seen] == [
            VerificationState.QUERYING,
            VerificationState.QUERYING,
            VerificationState.SECURITY_CHECK,
        ]
        assert seen[0].record is None
        assert seen[2].record is not None

    async def test_async_observer_awaited(self):
        seen: list[int] = []

        async def observer(attempt):
            seen.append(attempt.attempt)

        verifier = _verifier(FakeSettlement(_record()))
        _open(verifier)
        await verifier.verify("c-1", observer=observer)
        assert seen == [1]

    async def test_observer_errors_do_not_change_outcome(self):
        def observer(attempt):
            raise RuntimeError("render failed")

        verifier = _verifier(FakeSettlement(None, _record()))
        _open(verifier)
        assert (await verifier.verify("c-1", observer=observer)).verified

    async def test_observer_sees_error(self):
        seen: list[VerificationAttempt] = []
        verifier = _verifier(FakeSettlement(SettlementQueryError("down"), _record()))
        _open(verifier)
        await verifier.verify("c-1", observer=seen.append)
        assert isinstance(seen[0].error, SettlementQueryError)
        assert seen[1].error is None

    async def test_failed_state_reported_before_raise(self):
        seen: list[VerificationAttempt] = []
        verifier = _verifier(FakeSettlement(_record(state="REFUNDED")))
        with pytest.raises(PaymentFailedError):
            await verifier.verify("c-1", observer=seen.append)
        assert seen[-1].state is VerificationState.FAILED


# ---------------------------------------------------------------------------
# Webhook delivery
# ---------------------------------------------------------------------------


class TestWebhook:
    async def test_verified_result_dispatched_with_session_metadata(self):
        posted: list[httpx.Request] = []

        def handler(request):
            posted.append(request)
            return httpx.Response(200)

        webhook = WebhookDispatcher(WebhookSettings(retry_delay=0), transport=httpx.MockTransport(handler))
        await webhook.connect()
        verifier = _verifier(FakeSettlement(_record()), webhook=webhook)
        _open(verifier, order_id="order-7", email="b@example.com", webhook_url="https://merchant.test/hook")

        await verifier.verify("c-1")
        await webhook.close()

        assert len(posted) == 1
        assert str(posted[0].url) == "https://merchant.test/hook"
        body = json.loads(posted[0].content)
        assert body["orderId"] == "order-7"
        assert body["email"] == "b@example.com"
        assert body["contractId"] == "c-1"
        assert body["verified"] is True

    async def test_rejection_not_dispatched(self):
        posted: list[httpx.Request] = []
        webhook = WebhookDispatcher(
            WebhookSettings(url="https://merchant.test/hook"),
            transport=httpx.MockTransport(lambda r: posted.append(r) or httpx.Response(200)),
        )
        await webhook.connect()
        verifier = _verifier(FakeSettlement(_record(seller="0xBADACTOR")), webhook=webhook)
        _open(verifier)
        with pytest.raises(PaymentRejectedError):
            await verifier.verify("c-1")
        assert posted == []

    async def test_webhook_failure_does_not_fail_verification(self):
        webhook = WebhookDispatcher(
            WebhookSettings(url="https://merchant.test/hook", max_retries=0),
            transport=httpx.MockTransport(lambda r: httpx.Response(500)),
        )
        await webhook.connect()
        verifier = _verifier(FakeSettlement(_record()), webhook=webhook)
        assert (await verifier.verify("c-1")).verified
