"""Settlement verification errors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from conduit_finality.errors.finality_errors import ErrorKind, FinalityError

if TYPE_CHECKING:
    from conduit_finality.payments.models import SettlementRecord


class SettlementQueryError(FinalityError):
    """The settlement backend could not be reached or answered with an error."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(message, status_code=status_code, code="settlement-query-error")


class PaymentFailedError(FinalityError):
    """The settlement record is in a failed lifecycle state (e.g. never funded)."""

    def __init__(self, record: SettlementRecord) -> None:
        super().__init__(
            f"payment {record.record_id} failed with state {record.lifecycle_state!r}",
            status_code=422,
            code="payment-failed",
            kind=ErrorKind.BUSINESS,
        )
        self.record = record


class PaymentRejectedError(FinalityError):
    """The settlement record does not match the buyer's expected terms.

    Attributes:
        reason: The first failing check ("counterparty mismatch",
            "amount mismatch" or "unit mismatch").
        mismatches: Every failing check, in evaluation order.
        record: The offending settlement record.
    """

    def __init__(self, reason: str, *, mismatches: list[str], record: SettlementRecord) -> None:
        super().__init__(
            f"payment {record.record_id} rejected: {reason}",
            status_code=409,
            code="payment-rejected",
            kind=ErrorKind.SECURITY,
        )
        self.reason = reason
        self.mismatches = mismatches
        self.record = record


class VerificationTimeoutError(FinalityError):
    """The settlement record did not settle before the verification deadline."""

    def __init__(self, record_id: str, *, attempts: int, deadline: float) -> None:
        super().__init__(
            f"payment {record_id} not settled after {attempts} attempts ({deadline:.1f}s)",
            status_code=504,
            code="verification-timeout",
            kind=ErrorKind.TIMEOUT,
        )
        self.record_id = record_id
        self.attempts = attempts
        self.deadline = deadline
