"""Error taxonomy for the finality subsystem."""

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

__all__ = [
    "ConfigurationError",
    "ErrorKind",
    "FinalityError",
    "GasEstimationError",
    "PaymentFailedError",
    "PaymentRejectedError",
    "RPCError",
    "ReceiptTimeoutError",
    "SettlementQueryError",
    "SigningRejectedError",
    "TransactionFailedError",
    "VerificationTimeoutError",
    "WalletChannelError",
]
