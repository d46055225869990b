"""
Application service orchestrating payment use-cases.

This class depends only on the application ports (PaymentGateway,
CourseCatalog) and the domain. Gateway implementations are provided by
infrastructure and must be injected from the composition root (API),
keeping dependencies one-way.
"""
from __future__ import annotations

from typing import Any, Callable, Optional

from application.dtos.payments import (
    GatewayPaymentRequest,
    GatewayVerification,
    InstallmentItem,
    PaymentDetails,
    PlatformUser,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    VerifyPaymentResponse,
    WebhookEvent,
)
from application.ports.payment_gateway import CourseCatalog, PaymentGateway
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import (
    BusinessException,
    CourseNotFoundException,
    PaymentNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Installment, PaymentIntent, PaymentMethod, PaymentStatus, PaymentType
from domain.payment.phone import normalize_phone
from domain.payment.service import PaymentDomainService, generate_reference_id


logger = get_logger(__name__)


def _reference_owner(reference_id: str) -> Optional[int]:
    """User id embedded in `<prefix>-<ms>-<user>-<course>` references."""
    parts = reference_id.split("-")
    if len(parts) < 4:
        return None
    try:
        return int(parts[-2])
    except ValueError:
        return None


def to_payment_details(intent: PaymentIntent) -> PaymentDetails:
    installments = None
    if intent.payment_type == PaymentType.INSTALLMENT:
        installments = [
            InstallmentItem(amount=i.amount, due_date=i.due_date, is_paid=i.is_paid)
            for i in intent.installments
        ]
    return PaymentDetails(
        status=intent.status,
        course_name=intent.course_name,
        amount=intent.amount,
        payment_date=intent.paid_at or intent.created_at,
        payment_method=intent.payment_method,
        wallet_type=intent.wallet_type,
        type=intent.payment_type,
        installments=installments,
    )


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        catalog: CourseCatalog,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self.catalog = catalog

    async def process_payment(self, req: ProcessPaymentRequest, user: PlatformUser) -> ProcessPaymentResponse:
        course = await self.catalog.get_course(req.course_id)
        if course is None:
            raise CourseNotFoundException(req.course_id)
        if course.price != req.amount:
            logger.warning(
                "payment_amount_differs_from_price",
                course_id=course.id,
                price=str(course.price),
                amount=str(req.amount),
            )

        wallet = req.wallet_type if req.payment_method == PaymentMethod.MOBILE_WALLET else None
        phone = normalize_phone(req.phone, wallet)
        installments = [
            Installment(
                amount=item.amount,
                due_date=item.due_date,
                is_paid=item.is_paid,
                installment_number=number,
            )
            for number, item in enumerate(req.installments or [], start=1)
        ]
        reference_id = generate_reference_id(payment_settings.reference_prefix, user.id, req.course_id)

        logger.info(
            "payment_process_request",
            reference_id=reference_id,
            course_id=req.course_id,
            user_id=user.id,
            payment_type=req.payment_type.value,
            payment_method=req.payment_method.value,
            provider=self.gateway.provider,
        )

        # The pending intent is committed before the gateway call so that a
        # webhook racing the response always finds it.
        async with self._uow_factory() as uow:
            domain_service = PaymentDomainService(uow.payment_repository)
            await domain_service.create_intent(
                reference_id=reference_id,
                user_id=user.id,
                course_id=course.id,
                course_name=course.title,
                amount=req.amount,
                payment_type=req.payment_type,
                payment_method=req.payment_method,
                phone=phone,
                wallet_type=wallet,
                installments=installments,
                gateway=self.gateway.provider,
            )

        gateway_request = GatewayPaymentRequest(
            reference_id=reference_id,
            amount=req.amount,
            currency=payment_settings.currency,
            description=f"Payment for {course.title}",
            customer_name=user.name,
            customer_email=user.email,
            customer_phone=phone,
            payment_method=req.payment_method,
            wallet_type=wallet,
        )
        try:
            result = await self.gateway.create_payment(gateway_request)
        except BusinessException as exc:
            logger.error(
                "payment_gateway_failed",
                reference_id=reference_id,
                provider=self.gateway.provider,
                error=exc.message,
            )
            await self._apply_status(reference_id, PaymentStatus.FAILED, reason=exc.message)
            raise

        async with self._uow_factory() as uow:
            domain_service = PaymentDomainService(uow.payment_repository)
            intent = await domain_service.get_intent(reference_id)
            await domain_service.attach_redirect(intent, result.redirect_url)
            if result.status != PaymentStatus.PENDING:
                await domain_service.apply_gateway_status(
                    reference_id, result.status, transaction_id=result.transaction_id
                )
            events = domain_service.clear_events()
        self._publish(events)

        logger.info(
            "payment_process_response",
            reference_id=reference_id,
            status=result.status.value,
            redirect=bool(result.redirect_url),
        )
        return ProcessPaymentResponse(reference_id=reference_id, redirect_url=result.redirect_url)

    async def verify_payment(self, reference_id: str, user: PlatformUser) -> VerifyPaymentResponse:
        async with self._uow_factory(readonly=True) as uow:
            intent = await uow.payment_repository.get_by_reference_id(reference_id)

        if intent is not None:
            if intent.user_id != user.id and not user.is_staff:
                # Same answer as an unknown reference
                raise PaymentNotFoundException(reference_id)
            if intent.status == PaymentStatus.PENDING:
                intent = await self._reconcile(intent)
            logger.info("payment_verify", reference_id=reference_id, status=intent.status.value, source="local")
            return VerifyPaymentResponse(payment=to_payment_details(intent))

        owner = _reference_owner(reference_id)
        if owner != user.id and not user.is_staff:
            raise PaymentNotFoundException(reference_id)
        verification = await self._lookup_gateway(reference_id)
        if verification is None:
            raise PaymentNotFoundException(reference_id)
        logger.info("payment_verify", reference_id=reference_id, status=verification.status.value, source="gateway")
        return VerifyPaymentResponse(payment=PaymentDetails(
            status=verification.status,
            amount=verification.amount,
            payment_date=verification.paid_at,
        ))

    async def handle_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        event = self.gateway.parse_webhook(headers, body)
        logger.info(
            "payment_webhook_parsed",
            provider=self.gateway.provider,
            event_type=event.type,
            event_id=event.id,
            reference_id=event.reference_id,
            status=event.status.value,
        )
        try:
            await self._apply_status(
                event.reference_id,
                event.status,
                transaction_id=event.transaction_id,
                reason=event.data.get("message") or event.data.get("reason"),
            )
        except PaymentNotFoundException:
            logger.warning("payment_webhook_unknown_reference", reference_id=event.reference_id)
        return event

    async def _reconcile(self, intent: PaymentIntent) -> PaymentIntent:
        """Ask the gateway about a pending intent in case a webhook was missed."""
        verification = await self._lookup_gateway(intent.reference_id)
        if verification is None or verification.status == PaymentStatus.PENDING:
            return intent
        return await self._apply_status(
            intent.reference_id, verification.status, transaction_id=verification.transaction_id
        )

    async def _lookup_gateway(self, reference_id: str) -> Optional[GatewayVerification]:
        try:
            return await self.gateway.verify_payment(reference_id)
        except BusinessException as exc:
            logger.warning(
                "payment_gateway_lookup_failed",
                reference_id=reference_id,
                provider=self.gateway.provider,
                error=exc.message,
            )
            return None

    async def _apply_status(
        self,
        reference_id: str,
        status: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> PaymentIntent:
        async with self._uow_factory() as uow:
            domain_service = PaymentDomainService(uow.payment_repository)
            intent = await domain_service.get_intent(reference_id)
            if intent.is_final_status() and status != PaymentStatus.PENDING and intent.status != status:
                # Terminal states are final; a late contradicting report is only logged
                logger.warning(
                    "payment_status_conflict",
                    reference_id=reference_id,
                    current=intent.status.value,
                    reported=status.value,
                )
                return intent
            intent = await domain_service.apply_gateway_status(
                reference_id, status, transaction_id=transaction_id, reason=reason
            )
            events = domain_service.clear_events()
        self._publish(events)
        return intent

    def _publish(self, events: list) -> None:
        # Enrollment creation subscribes to these downstream
        for event in events:
            logger.info(
                "payment_event",
                event_type=type(event).__name__,
                event_id=event.event_id,
                reference_id=event.reference_id,
                course_id=event.course_id,
                user_id=event.user_id,
            )

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
