"""Ledger-side errors: RPC channels, signing agent, gas, receipts."""

from __future__ import annotations

from conduit_finality.errors.finality_errors import ErrorKind, FinalityError


class RPCError(FinalityError):
    """Error from the read channel (public JSON-RPC endpoint).

    Attributes:
        rpc_code: JSON-RPC error code when the node answered with one.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        rpc_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, code="rpc-error")
        self.rpc_code = rpc_code


class WalletChannelError(FinalityError):
    """The signing agent failed (disconnected, broken session, bad response).

    Surfaced verbatim to the caller; never retried on the read channel.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        rpc_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, code="wallet-channel-error")
        self.rpc_code = rpc_code


class SigningRejectedError(FinalityError):
    """The user declined or cancelled the signature request."""

    def __init__(self, message: str = "user rejected the signing request") -> None:
        super().__init__(
            message,
            status_code=400,
            code="signing-rejected",
            kind=ErrorKind.BUSINESS,
        )


class GasEstimationError(FinalityError):
    """No gas limit could be determined for a transaction intent."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            status_code=422,
            code="gas-estimation-failed",
            kind=ErrorKind.CONFIGURATION,
        )


class ReceiptTimeoutError(FinalityError):
    """No receipt appeared before the polling deadline.

    The transaction may still be mined later; callers may resume polling.
    """

    def __init__(self, tx_hash: str, *, attempts: int, timeout_ms: int) -> None:
        super().__init__(
            f"no receipt for {tx_hash} after {attempts} attempts ({timeout_ms} ms)",
            status_code=504,
            code="receipt-timeout",
            kind=ErrorKind.TIMEOUT,
        )
        self.tx_hash = tx_hash
        self.attempts = attempts
        self.timeout_ms = timeout_ms


class TransactionFailedError(FinalityError):
    """A transaction was mined but reverted."""

    def __init__(self, tx_hash: str, *, block_number: int = 0) -> None:
        super().__init__(
            f"transaction {tx_hash} reverted in block {block_number}",
            status_code=422,
            code="transaction-failed",
            kind=ErrorKind.BUSINESS,
        )
        self.tx_hash = tx_hash
        self.block_number = block_number
