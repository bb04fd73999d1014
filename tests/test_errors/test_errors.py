"""Tests for error classes and pre-defined error instances."""

from __future__ import annotations

import pytest

from conduit_finality.errors import definitions as defs
from conduit_finality.errors.chain_errors import (
    GasEstimationError,
    ReceiptTimeoutError,
    RPCError,
    SigningRejectedError,
    TransactionFailedError,
    WalletChannelError,
)
from conduit_finality.errors.finality_errors import ConfigurationError, ErrorKind, FinalityError
from conduit_finality.errors.payment_errors import (
    PaymentFailedError,
    PaymentRejectedError,
    SettlementQueryError,
    VerificationTimeoutError,
)
from conduit_finality.payments.models import SettlementRecord

# ---------------------------------------------------------------------------
# FinalityError base class
# ---------------------------------------------------------------------------


class TestFinalityError:
    def test_default_attributes(self) -> None:
        err = FinalityError("something broke")
        assert str(err) == "something broke"
        assert err.message == "something broke"
        assert err.status_code == 500
        assert err.code == "finality-error"
        assert err.kind is ErrorKind.TRANSIENT
        assert err.is_retryable

    def test_custom_attributes(self) -> None:
        err = FinalityError("bad", status_code=400, code="bad-req", kind=ErrorKind.BUSINESS)
        assert err.status_code == 400
        assert err.code == "bad-req"
        assert not err.is_retryable

    def test_is_exception(self) -> None:
        with pytest.raises(FinalityError, match="boom"):
            raise FinalityError("boom")


# ---------------------------------------------------------------------------
# Error kinds
# ---------------------------------------------------------------------------


def _record() -> SettlementRecord:
    return SettlementRecord.from_dict({"contractid": "c-1", "state": "NEVER_FUNDED"})


class TestKinds:
    @pytest.mark.parametrize(
        ("err", "kind"),
        [
            (RPCError("x"), ErrorKind.TRANSIENT),
            (WalletChannelError("x"), ErrorKind.TRANSIENT),
            (SettlementQueryError("x"), ErrorKind.TRANSIENT),
            (SigningRejectedError(), ErrorKind.BUSINESS),
            (TransactionFailedError("0x1", block_number=3), ErrorKind.BUSINESS),
            (GasEstimationError("x"), ErrorKind.CONFIGURATION),
            (ConfigurationError("x"), ErrorKind.CONFIGURATION),
            (ReceiptTimeoutError("0x1", attempts=2, timeout_ms=10), ErrorKind.TIMEOUT),
            (VerificationTimeoutError("c-1", attempts=2, deadline=1.0), ErrorKind.TIMEOUT),
            (PaymentFailedError(_record()), ErrorKind.BUSINESS),
            (PaymentRejectedError("amount mismatch", mismatches=["amount mismatch"], record=_record()), ErrorKind.SECURITY),
        ],
    )
    def test_kind(self, err: FinalityError, kind: ErrorKind) -> None:
        assert isinstance(err, FinalityError)
        assert err.kind is kind
        assert err.is_retryable is (kind is ErrorKind.TRANSIENT)

    def test_rpc_code_kept(self) -> None:
        assert RPCError("nope", rpc_code=-32000).rpc_code == -32000

    def test_receipt_timeout_message(self) -> None:
        err = ReceiptTimeoutError("0xabc", attempts=3, timeout_ms=6000)
        assert "0xabc" in err.message
        assert err.status_code == 504

    def test_payment_failed_carries_record(self) -> None:
        err = PaymentFailedError(_record())
        assert err.record.record_id == "c-1"
        assert "NEVER_FUNDED" in err.message


# ---------------------------------------------------------------------------
# Pre-defined error instances (definitions.py)
# ---------------------------------------------------------------------------


class TestDefinitions:
    @pytest.mark.parametrize(
        ("err", "code"),
        [
            (defs.ErrAgentNotInitialized, "agent-not-initialized"),
            (defs.ErrSettlementURLMissing, "settlement-url-missing"),
            (defs.ErrSessionActive, "session-active"),
            (defs.ErrEngineNotInitialized, "engine-not-initialized"),
        ],
    )
    def test_codes(self, err: ConfigurationError, code: str) -> None:
        assert isinstance(err, ConfigurationError)
        assert err.code == code
        assert err.kind is ErrorKind.CONFIGURATION
