"""Payment verification models — settlement records, expectations, verdicts.

Settlement records come from the external settlement backend and are
never mutated here. Their free-form ``state`` strings are mapped once,
by :func:`classify_lifecycle`, to a closed set of classes; the raw string
is kept only for diagnostics.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from conduit_finality.payments.currency import normalize_unit, to_decimal, to_display

# ---------------------------------------------------------------------------
# Lifecycle classification
# ---------------------------------------------------------------------------


class LifecycleState(enum.StrEnum):
    """Lifecycle states reported by the settlement backend."""

    PENDING = "PENDING"
    UNKNOWN = "UNKNOWN"
    CREATED = "CREATED"
    NEVER_FUNDED = "NEVER_FUNDED"
    FAILED = "FAILED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    ACTIVE = "ACTIVE"
    OK = "OK"
    FUNDED = "FUNDED"
    CLAIMED = "CLAIMED"
    DISPUTED = "DISPUTED"
    RESOLVED = "RESOLVED"
    EXPIRED = "EXPIRED"


class LifecycleClass(enum.StrEnum):
    """What a lifecycle state means for verification."""

    PENDING = "pending"
    FAILED = "failed"
    SETTLED = "settled"


_LIFECYCLE_CLASSES: dict[LifecycleState, LifecycleClass] = {
    LifecycleState.PENDING: LifecycleClass.PENDING,
    LifecycleState.UNKNOWN: LifecycleClass.PENDING,
    LifecycleState.CREATED: LifecycleClass.PENDING,
    LifecycleState.NEVER_FUNDED: LifecycleClass.FAILED,
    LifecycleState.FAILED: LifecycleClass.FAILED,
    LifecycleState.ERROR: LifecycleClass.FAILED,
    LifecycleState.CANCELLED: LifecycleClass.FAILED,
    LifecycleState.REFUNDED: LifecycleClass.FAILED,
    LifecycleState.ACTIVE: LifecycleClass.SETTLED,
    LifecycleState.OK: LifecycleClass.SETTLED,
    LifecycleState.FUNDED: LifecycleClass.SETTLED,
    LifecycleState.CLAIMED: LifecycleClass.SETTLED,
    LifecycleState.DISPUTED: LifecycleClass.SETTLED,
    LifecycleState.RESOLVED: LifecycleClass.SETTLED,
    LifecycleState.EXPIRED: LifecycleClass.SETTLED,
}


def parse_lifecycle(raw_state: str | None) -> LifecycleState | None:
    """Map a raw state string to :class:`LifecycleState` (None if unrecognized).

    Matching ignores case and treats spaces and dashes as underscores, so
    ``"never funded"`` and ``"NEVER-FUNDED"`` are ``NEVER_FUNDED``.
    """
    if not raw_state:
        return LifecycleState.PENDING
    key = raw_state.strip().upper().replace(" ", "_").replace("-", "_")
    try:
        return LifecycleState(key)
    except ValueError:
        return None


def classify_lifecycle(raw_state: str | None) -> LifecycleClass:
    """Classify a raw state string. Unrecognized strings keep polling."""
    state = parse_lifecycle(raw_state)
    if state is None:
        return LifecycleClass.PENDING
    return _LIFECYCLE_CLASSES[state]


# ---------------------------------------------------------------------------
# Settlement records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementRecord:
    """A payment record as reported by the settlement backend.

    ``amount`` is in ``unit`` exactly as reported (usually micro units).
    """

    record_id: str
    counterparty: str
    amount: Decimal
    unit: str
    lifecycle_state: str = ""
    ledger_address: str | None = None
    seller_wallet_id: str = ""
    description: str = ""
    expiry_timestamp: int | None = None

    @property
    def lifecycle_class(self) -> LifecycleClass:
        return classify_lifecycle(self.lifecycle_state)

    @property
    def display_amount(self) -> Decimal:
        """``amount`` converted to the display unit."""
        return to_display(self.amount, self.unit)[0]

    @property
    def display_unit(self) -> str:
        return normalize_unit(self.unit)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SettlementRecord:
        """Create from one entry of the settlement query ``results`` list."""
        record_id = data.get("contractid") or data.get("contractId") or data.get("id") or ""
        counterparty = data.get("sellerAddress") or data.get("seller") or data.get("sellerWalletId") or ""
        expiry = data.get("expiryTimestamp")
        return cls(
            record_id=str(record_id),
            counterparty=str(counterparty),
            amount=to_decimal(data.get("amount") or 0),
            unit=str(data.get("currencySymbol") or "microUSDC"),
            lifecycle_state=str(data.get("state") or data.get("status") or ""),
            ledger_address=data.get("chainAddress") or None,
            seller_wallet_id=str(data.get("sellerWalletId") or ""),
            description=str(data.get("description") or ""),
            expiry_timestamp=int(expiry) if expiry else None,
        )


# ---------------------------------------------------------------------------
# Checkout session
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpectedPayment:
    """What the buyer agreed to pay, in display units."""

    amount: Decimal
    unit: str
    counterparty: str


@dataclass(frozen=True)
class CheckoutParams:
    """Parameters of one checkout session.

    ``amount`` is in display units (``50.0`` USDC).
    """

    amount: Decimal | str | float
    counterparty: str
    description: str = ""
    unit: str = "USDC"
    order_id: str = ""
    email: str = ""
    webhook_url: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def expectation(self) -> ExpectedPayment:
        """Return the :class:`ExpectedPayment` for this checkout."""
        amount, unit = to_display(self.amount, self.unit)
        return ExpectedPayment(amount=amount, unit=unit, counterparty=self.counterparty)


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VerificationResult:
    """Terminal verdict for a settlement record."""

    record_id: str
    ledger_address: str
    counterparty: str
    amount: Decimal
    unit: str
    raw_amount: Decimal
    raw_unit: str
    lifecycle_state: str
    verified: bool
    verified_at: datetime

    @classmethod
    def from_record(cls, record: SettlementRecord, *, verified: bool = True) -> VerificationResult:
        return cls(
            record_id=record.record_id,
            ledger_address=record.ledger_address or "",
            counterparty=record.counterparty,
            amount=record.display_amount,
            unit=record.display_unit,
            raw_amount=record.amount,
            raw_unit=record.unit,
            lifecycle_state=record.lifecycle_state,
            verified=verified,
            verified_at=datetime.now(UTC),
        )

    def to_wire(self) -> dict[str, Any]:
        """Wire representation used in webhook bodies.

        Amounts are decimal strings so no precision is lost in transit.
        """
        return {
            "contractId": self.record_id,
            "chainAddress": self.ledger_address,
            "seller": self.counterparty,
            "amount": str(self.amount),
            "currencySymbol": self.unit,
            "rawAmount": str(self.raw_amount),
            "rawCurrencySymbol": self.raw_unit,
            "state": self.lifecycle_state,
            "verified": self.verified,
            "verifiedAt": self.verified_at.isoformat(),
        }
