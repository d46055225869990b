"""
Installment plan calculation.

Pure functions: no persistence, no I/O. Amounts are Decimals at the currency's
minor unit and the split always sums exactly to the total.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

from domain.common.exceptions import InvalidInstallmentArgumentException
from domain.payment.entity import Installment

ALLOWED_INSTALLMENT_MONTHS = (3, 6, 12)
MINOR_UNIT = Decimal("0.01")
INSTALLMENT_INTERVAL = timedelta(days=30)

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Convert to a Decimal rounded to the minor unit."""
    try:
        # str() keeps floats like 99.99 from turning into binary noise
        return Decimal(str(value)).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInstallmentArgumentException(
            f"Invalid amount: {value}", field="total_amount", value=value
        ) from exc


def calculate_installments(total_amount: Number, months: int) -> list[Decimal]:
    """
    Split total_amount into `months` per-period amounts.

    Every period gets the even share rounded down to the minor unit; the last
    one absorbs the remainder so that sum(result) == total_amount.
    """
    if isinstance(months, bool) or not isinstance(months, int) or months <= 0:
        raise InvalidInstallmentArgumentException(
            f"Number of months must be a positive integer: {months}", field="months", value=months
        )
    total = to_money(total_amount)
    if total < 0:
        raise InvalidInstallmentArgumentException(
            f"Total amount must not be negative: {total_amount}", field="total_amount", value=total_amount
        )

    share = (total / months).quantize(MINOR_UNIT, rounding=ROUND_DOWN)
    amounts = [share] * months
    amounts[-1] = total - share * (months - 1)
    return amounts


@dataclass(frozen=True)
class InstallmentPlan:
    """Client-side, ephemeral plan. Replace it instead of mutating it."""

    months: int
    amounts: tuple[Decimal, ...]

    @classmethod
    def create(cls, total_amount: Number, months: int) -> "InstallmentPlan":
        if months not in ALLOWED_INSTALLMENT_MONTHS:
            raise InvalidInstallmentArgumentException(
                f"Installment period must be one of {ALLOWED_INSTALLMENT_MONTHS}",
                field="months",
                value=months,
            )
        return cls(months=months, amounts=tuple(calculate_installments(total_amount, months)))

    @property
    def total(self) -> Decimal:
        return sum(self.amounts, Decimal("0"))

    @property
    def first_payment(self) -> Decimal:
        return self.amounts[0]

    def matches(self, total_amount: Number) -> bool:
        return self.total == to_money(total_amount)


def build_installment_schedule(
    amounts: Iterable[Decimal],
    start: datetime,
    interval: timedelta = INSTALLMENT_INTERVAL,
) -> list[Installment]:
    """Due dates spaced `interval` apart from `start`; the first one is paid at enrollment."""
    return [
        Installment(
            amount=amount,
            due_date=start + index * interval,
            is_paid=index == 0,
            installment_number=index + 1,
        )
        for index, amount in enumerate(amounts)
    ]
