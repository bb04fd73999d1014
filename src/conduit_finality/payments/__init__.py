"""Settlement verification against the buyer's expected payment."""

from conduit_finality.payments.models import (
    CheckoutParams,
    ExpectedPayment,
    LifecycleClass,
    LifecycleState,
    SettlementRecord,
    VerificationResult,
    classify_lifecycle,
)
from conduit_finality.payments.settlement import SettlementClient
from conduit_finality.payments.verifier import (
    PaymentVerifier,
    VerificationAttempt,
    VerificationState,
    security_check,
)

__all__ = [
    "CheckoutParams",
    "ExpectedPayment",
    "LifecycleClass",
    "LifecycleState",
    "PaymentVerifier",
    "SettlementClient",
    "SettlementRecord",
    "VerificationAttempt",
    "VerificationResult",
    "VerificationState",
    "classify_lifecycle",
    "security_check",
]
