"""Escrow funding sequence: approve token spend, then deposit.

Each step is submitted, reconciled and confirmed before the next one is
sent; sending the deposit while the approval is still unmined collides on
the nonce.

Progress steps reported through ``on_progress(step, message)``:
``approval``, ``approval_confirmation``, ``deposit``,
``deposit_confirmation``, ``complete``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from eth_abi import encode
from eth_utils import to_checksum_address

from conduit_finality.errors.chain_errors import ReceiptTimeoutError, TransactionFailedError
from conduit_finality.transactions.models import (
    APPROVE_SELECTOR,
    DEPOSIT_FUNDS_SELECTOR,
    Receipt,
    TransactionIntent,
    VerifiedTransaction,
)

if TYPE_CHECKING:
    from conduit_finality.transactions.poller import ConfirmationPoller
    from conduit_finality.transactions.reconciler import TransactionIdentityReconciler
    from conduit_finality.transactions.submitter import TransactionSubmitter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]


def encode_approve(spender: str, amount: int) -> str:
    """Calldata for ERC-20 ``approve(spender, amount)``."""
    args = encode(["address", "uint256"], [to_checksum_address(spender), amount])
    return APPROVE_SELECTOR + args.hex()


def encode_deposit_funds() -> str:
    """Calldata for escrow ``depositFunds()``."""
    return DEPOSIT_FUNDS_SELECTOR


@dataclass(frozen=True)
class FundingResult:
    """Outcome of a funding sequence.

    ``approval_receipt`` is None when the approval confirmation timed out;
    a deposit confirmation timeout raises instead.
    """

    approval: VerifiedTransaction
    deposit: VerifiedTransaction
    approval_receipt: Receipt | None = None
    deposit_receipt: Receipt | None = None


class FundingSequence:
    """Run approve → deposit against an escrow contract."""

    def __init__(
        self,
        submitter: TransactionSubmitter,
        reconciler: TransactionIdentityReconciler,
        poller: ConfirmationPoller,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._submitter = submitter
        self._reconciler = reconciler
        self._poller = poller
        self._on_progress = on_progress

    async def run(self, token_address: str, escrow_address: str, amount: int) -> FundingResult:
        """Approve *amount* raw token units for *escrow_address*, then deposit.

        Raises:
            TransactionFailedError: If either transaction reverted.
            SigningRejectedError: If the user declined either signature.
            ReceiptTimeoutError: If the deposit was not confirmed in time.
        """
        self._progress("approval", "Approving token transfer...")
        approval = await self._send(TransactionIntent(to=token_address, data=encode_approve(escrow_address, amount)))

        self._progress("approval_confirmation", "Waiting for approval to be confirmed...")
        approval_receipt = await self._confirm(approval, tolerate_timeout=True)

        self._progress("deposit", "Depositing funds into escrow...")
        deposit = await self._send(TransactionIntent(to=escrow_address, data=encode_deposit_funds()))

        self._progress("deposit_confirmation", "Waiting for deposit to be confirmed...")
        deposit_receipt = await self._confirm(deposit)

        self._progress("complete", "Funding sequence completed")
        return FundingResult(
            approval=approval,
            deposit=deposit,
            approval_receipt=approval_receipt,
            deposit_receipt=deposit_receipt,
        )

    async def _send(self, intent: TransactionIntent) -> VerifiedTransaction:
        pending = await self._submitter.submit(intent)
        return await self._reconciler.reconcile(pending)

    async def _confirm(self, tx: VerifiedTransaction, *, tolerate_timeout: bool = False) -> Receipt | None:
        try:
            receipt = await self._poller.wait_for_receipt(tx.confirmed_hash)
        except ReceiptTimeoutError as exc:
            if not tolerate_timeout:
                raise
            logger.warning("Confirmation of %s timed out, proceeding: %s", tx.confirmed_hash, exc.message)
            return None
        if not receipt.succeeded:
            raise TransactionFailedError(tx.confirmed_hash, block_number=receipt.block_number)
        return receipt

    def _progress(self, step: str, message: str) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(step, message)
        except Exception:
            logger.exception("Progress callback failed at step %s", step)
