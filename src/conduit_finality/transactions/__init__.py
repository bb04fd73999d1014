"""Transaction submission, identity reconciliation and confirmation."""

from conduit_finality.transactions.models import (
    OperationType,
    PendingTransaction,
    Receipt,
    ReceiptStatus,
    TransactionIntent,
    VerifiedTransaction,
    classify_operation,
)
from conduit_finality.transactions.nonce import StuckNonceReport, find_stuck_nonce
from conduit_finality.transactions.poller import ConfirmationPoller, PollState
from conduit_finality.transactions.reconciler import TransactionIdentityReconciler
from conduit_finality.transactions.sequence import FundingResult, FundingSequence
from conduit_finality.transactions.submitter import TransactionSubmitter

__all__ = [
    "ConfirmationPoller",
    "FundingResult",
    "FundingSequence",
    "OperationType",
    "PendingTransaction",
    "PollState",
    "Receipt",
    "ReceiptStatus",
    "StuckNonceReport",
    "TransactionIdentityReconciler",
    "TransactionIntent",
    "TransactionSubmitter",
    "VerifiedTransaction",
    "classify_operation",
    "find_stuck_nonce",
]
