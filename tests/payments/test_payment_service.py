import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from application.dtos.payments import (
    GatewayVerification,
    InstallmentItem,
    PlatformUser,
    ProcessPaymentRequest,
)
from application.services.payment_service import PaymentService
from domain.common.exceptions import CourseNotFoundException, InvalidPhoneNumberException, PaymentNotFoundException
from domain.payment.entity import PaymentMethod, PaymentStatus, PaymentType, WalletType
from infrastructure.external.payments.exceptions import PaymentProviderError


@pytest.fixture
def service(gateway, uow_factory, catalog):
    return PaymentService(gateway=gateway, uow_factory=uow_factory, catalog=catalog)


def wallet_request(**overrides):
    fields = dict(
        amount=Decimal("300"),
        course_id=7,
        payment_type=PaymentType.ONE_TIME,
        payment_method=PaymentMethod.MOBILE_WALLET,
        wallet_type=WalletType.EVCPLUS,
        phone="+252617123456",
    )
    fields.update(overrides)
    return ProcessPaymentRequest(**fields)


def installment_request():
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    return wallet_request(
        payment_type=PaymentType.INSTALLMENT,
        installments=[
            InstallmentItem(amount=Decimal("100"), due_date=start, is_paid=True),
            InstallmentItem(amount=Decimal("100"), due_date=start + timedelta(days=30)),
            InstallmentItem(amount=Decimal("100"), due_date=start + timedelta(days=60)),
        ],
    )


def webhook(reference_id, status, transaction_id="TX-1"):
    return json.dumps({"transactionId": transaction_id, "referenceId": reference_id, "status": status}).encode()


async def test_process_creates_pending_intent(service, gateway, repository, student):
    result = await service.process_payment(wallet_request(), student)

    assert result.reference_id.startswith("THUB-")
    assert result.reference_id.endswith("-1-7")
    assert result.redirect_url.endswith(result.reference_id)

    stored = repository.rows[result.reference_id]
    assert stored.status == PaymentStatus.PENDING
    assert stored.course_name == "Intro to Python"
    assert stored.redirect_url == result.redirect_url
    assert gateway.created[0].customer_phone == "+252617123456"
    assert gateway.created[0].description == "Payment for Intro to Python"


async def test_process_installment_intent(service, repository, student):
    result = await service.process_payment(installment_request(), student)
    stored = repository.rows[result.reference_id]
    assert stored.payment_type == PaymentType.INSTALLMENT
    assert [i.installment_number for i in stored.installments] == [1, 2, 3]
    assert stored.installments[0].is_paid


async def test_process_unknown_course(service, gateway, student):
    with pytest.raises(CourseNotFoundException):
        await service.process_payment(wallet_request(course_id=99), student)
    assert gateway.created == []


async def test_process_rejects_bad_phone(service, gateway, student):
    with pytest.raises(InvalidPhoneNumberException):
        await service.process_payment(wallet_request(phone="12"), student)
    assert gateway.created == []


async def test_gateway_failure_marks_intent_failed(service, gateway, repository, student):
    gateway.create_error = PaymentProviderError("Payment was declined", provider="stub")
    with pytest.raises(PaymentProviderError):
        await service.process_payment(wallet_request(), student)

    (stored,) = repository.rows.values()
    assert stored.status == PaymentStatus.FAILED
    assert stored.failure_reason == "Payment was declined"


async def test_gateway_immediate_completion(service, gateway, repository, student):
    gateway.result_status = PaymentStatus.COMPLETED
    result = await service.process_payment(wallet_request(), student)
    stored = repository.rows[result.reference_id]
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.paid_at is not None


async def test_webhook_completes_intent(service, repository, student):
    result = await service.process_payment(installment_request(), student)
    event = await service.handle_webhook({}, webhook(result.reference_id, "COMPLETED", "TX-42"))

    assert event.status == PaymentStatus.COMPLETED
    stored = repository.rows[result.reference_id]
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.transaction_id == "TX-42"
    assert stored.installments[0].paid_at is not None
    assert not stored.installments[1].is_paid


async def test_duplicate_and_conflicting_webhooks(service, repository, student):
    result = await service.process_payment(wallet_request(), student)
    await service.handle_webhook({}, webhook(result.reference_id, "COMPLETED"))
    paid_at = repository.rows[result.reference_id].paid_at

    await service.handle_webhook({}, webhook(result.reference_id, "COMPLETED"))
    await service.handle_webhook({}, webhook(result.reference_id, "FAILED"))

    stored = repository.rows[result.reference_id]
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.paid_at == paid_at


async def test_webhook_for_unknown_reference_is_acknowledged(service):
    event = await service.handle_webhook({}, webhook("THUB-1-1-7", "COMPLETED"))
    assert event.reference_id == "THUB-1-1-7"


async def test_verify_own_payment(service, student):
    result = await service.process_payment(installment_request(), student)
    response = await service.verify_payment(result.reference_id, student)

    payment = response.payment
    assert payment.status == PaymentStatus.PENDING
    assert payment.course_name == "Intro to Python"
    assert payment.amount == Decimal("300.00")
    assert payment.type == PaymentType.INSTALLMENT
    assert len(payment.installments) == 3


async def test_verify_reconciles_pending_with_gateway(service, gateway, repository, student):
    result = await service.process_payment(wallet_request(), student)
    gateway.verification = GatewayVerification(
        reference_id=result.reference_id,
        provider="stub",
        status=PaymentStatus.COMPLETED,
        transaction_id="TX-7",
    )
    response = await service.verify_payment(result.reference_id, student)
    assert response.payment.status == PaymentStatus.COMPLETED
    assert repository.rows[result.reference_id].transaction_id == "TX-7"


async def test_verify_hides_other_students_payments(service, student):
    result = await service.process_payment(wallet_request(), student)
    other = PlatformUser(id=2, role="student")
    with pytest.raises(PaymentNotFoundException):
        await service.verify_payment(result.reference_id, other)

    admin = PlatformUser(id=3, role="admin")
    response = await service.verify_payment(result.reference_id, admin)
    assert response.payment.status == PaymentStatus.PENDING


async def test_verify_unknown_reference(service, student):
    with pytest.raises(PaymentNotFoundException):
        await service.verify_payment("THUB-1-1-7", student)


async def test_verify_falls_back_to_gateway(service, gateway, student):
    gateway.verification = GatewayVerification(
        reference_id="THUB-1-1-7",
        provider="stub",
        status=PaymentStatus.COMPLETED,
        amount=Decimal("300"),
    )
    response = await service.verify_payment("THUB-1-1-7", student)
    assert response.payment.status == PaymentStatus.COMPLETED
    assert response.payment.amount == Decimal("300")


async def test_aclose_closes_gateway(service, gateway):
    await service.aclose()
    assert gateway.closed
