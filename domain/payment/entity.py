"""
Payment domain entities - the PaymentIntent aggregate root
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class PaymentType(str, Enum):
    ONE_TIME = "one_time"
    INSTALLMENT = "installment"


class PaymentMethod(str, Enum):
    CARD = "card"
    MOBILE_WALLET = "mobile_wallet"


class WalletType(str, Enum):
    EVCPLUS = "EVCPlus"
    ZAAD = "ZAAD"
    SAHAL = "SAHAL"
    WAAFI = "WAAFI"  # legacy


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})

# Rounding tolerance between the intent amount and the installment total
INSTALLMENT_SUM_TOLERANCE = Decimal("0.01")


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Make datetimes timezone-aware in UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Installment:
    amount: Decimal
    due_date: datetime
    is_paid: bool = False
    installment_number: int = 1
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount < 0:
            raise DomainValidationException(
                f"Installment amount must not be negative: {self.amount}",
                field="installments",
            )
        self.due_date = _ensure_utc(self.due_date)
        self.paid_at = _ensure_utc(self.paid_at)


@dataclass
class PaymentIntent:
    """
    One attempt to pay for one course enrollment.

    Business rules:
    1. amount must be greater than 0 and a phone number is required
    2. wallet_type is set iff payment_method is mobile_wallet
    3. installment payments carry a schedule whose first entry is paid and
       whose total matches amount (up to one minor unit of rounding)
    4. status only moves pending -> completed or pending -> failed
    """

    id: Optional[int]
    reference_id: str
    user_id: Optional[int]
    course_id: int
    amount: Decimal
    payment_type: PaymentType
    payment_method: PaymentMethod
    phone: str
    wallet_type: Optional[WalletType] = None
    course_name: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    installments: list[Installment] = field(default_factory=list)

    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    gateway: str = "waafipay"
    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        self._validate_amount()
        self._validate_phone()
        self._validate_wallet()
        self._validate_installments()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)

    def _validate_amount(self) -> None:
        if self.amount <= 0:
            raise DomainValidationException(
                f"Payment amount must be greater than 0: {self.amount}",
                field="amount",
            )

    def _validate_phone(self) -> None:
        if not self.phone:
            raise DomainValidationException("Phone number is required", field="phone")

    def _validate_wallet(self) -> None:
        is_wallet = self.payment_method == PaymentMethod.MOBILE_WALLET
        if is_wallet and self.wallet_type is None:
            raise DomainValidationException(
                "Mobile wallet payments require a wallet type",
                field="wallet_type",
            )
        if not is_wallet and self.wallet_type is not None:
            raise DomainValidationException(
                f"Wallet type is only allowed for mobile wallet payments, got {self.payment_method.value}",
                field="wallet_type",
            )

    def _validate_installments(self) -> None:
        if self.payment_type == PaymentType.ONE_TIME:
            if self.installments:
                raise DomainValidationException(
                    "One-time payments cannot carry installments",
                    field="installments",
                )
            return

        if not self.installments:
            raise DomainValidationException(
                "Installment payments require an installment schedule",
                field="installments",
            )
        if not self.installments[0].is_paid:
            raise DomainValidationException(
                "The first installment is paid at enrollment",
                field="installments",
            )
        total = sum((i.amount for i in self.installments), Decimal("0"))
        if abs(total - self.amount) > INSTALLMENT_SUM_TOLERANCE:
            raise DomainValidationException(
                f"Installments total {total} does not match payment amount {self.amount}",
                field="installments",
                details={"total": str(total), "amount": str(self.amount)},
            )

    def is_final_status(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_completed(self, transaction_id: Optional[str] = None) -> bool:
        """
        Mark the intent completed.

        Returns False when the intent was already completed (duplicate notification).
        """
        if self.status == PaymentStatus.COMPLETED:
            return False
        if self.status != PaymentStatus.PENDING:
            raise DomainValidationException(
                f"Cannot transition from {self.status.value} to completed",
                field="status",
            )
        self.status = PaymentStatus.COMPLETED
        if transaction_id:
            self.transaction_id = transaction_id
        self.paid_at = datetime.now(timezone.utc)
        self.updated_at = self.paid_at
        self.failure_reason = None
        if self.installments and self.installments[0].paid_at is None:
            self.installments[0].paid_at = self.paid_at
        return True

    def mark_failed(self, reason: Optional[str] = None) -> bool:
        """Mark the intent failed. Returns False when it already was."""
        if self.status == PaymentStatus.FAILED:
            return False
        if self.status != PaymentStatus.PENDING:
            raise DomainValidationException(
                f"Cannot transition from {self.status.value} to failed",
                field="status",
            )
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)
        return True

    def apply_status(self, status: PaymentStatus, *, transaction_id: Optional[str] = None,
                     reason: Optional[str] = None) -> bool:
        """Apply a status reported by the gateway. Pending is a no-op."""
        if status == PaymentStatus.COMPLETED:
            return self.mark_completed(transaction_id)
        if status == PaymentStatus.FAILED:
            return self.mark_failed(reason)
        return False

    def attach_redirect(self, redirect_url: Optional[str]) -> None:
        self.redirect_url = redirect_url
        self.updated_at = datetime.now(timezone.utc)
