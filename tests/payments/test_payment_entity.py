from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import Installment, PaymentIntent, PaymentMethod, PaymentStatus, PaymentType, WalletType
from domain.payment.service import generate_reference_id


def intent(**overrides):
    fields = dict(
        id=None,
        reference_id="THUB-1-1-7",
        user_id=1,
        course_id=7,
        amount=Decimal("300"),
        payment_type=PaymentType.ONE_TIME,
        payment_method=PaymentMethod.CARD,
        phone="+2527123456",
    )
    fields.update(overrides)
    return PaymentIntent(**fields)


def test_reference_id_format():
    moment = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert generate_reference_id("THUB", 5, 9, now=moment) == f"THUB-{int(moment.timestamp() * 1000)}-5-9"
    assert generate_reference_id("THUB", None, 9, now=moment).endswith("-0-9")


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": Decimal("0")},
        {"phone": ""},
        {"wallet_type": WalletType.EVCPLUS},
        {"payment_method": PaymentMethod.MOBILE_WALLET},
        {"payment_type": PaymentType.INSTALLMENT},
    ],
)
def test_invalid_intents(overrides):
    with pytest.raises(DomainValidationException):
        intent(**overrides)


def test_installment_total_must_match():
    due = datetime(2026, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(DomainValidationException):
        intent(
            payment_type=PaymentType.INSTALLMENT,
            installments=[Installment(amount=Decimal("100"), due_date=due, is_paid=True)],
        )


def test_status_transitions():
    payment = intent()
    assert payment.apply_status(PaymentStatus.PENDING) is False
    assert payment.mark_completed("TX-1") is True
    assert payment.mark_completed("TX-2") is False
    assert payment.transaction_id == "TX-1"
    assert payment.is_final_status()
    with pytest.raises(DomainValidationException):
        payment.mark_failed("late")


def test_failed_is_final():
    payment = intent()
    assert payment.mark_failed("declined") is True
    assert payment.failure_reason == "declined"
    with pytest.raises(DomainValidationException):
        payment.mark_completed()
