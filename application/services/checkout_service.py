"""
Checkout: turn the user's selections into exactly one payment request.

All validation runs before any network call. The intent status is never
set here; it is only read back later through the result poller.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from application.dtos.payments import InstallmentItem, ProcessPaymentRequest
from application.ports.platform_api import PlatformApi
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DomainValidationException,
    InstallmentPlanRequiredException,
)
from domain.payment.entity import PaymentMethod, PaymentType, WalletType
from domain.payment.installments import (
    InstallmentPlan,
    Number,
    build_installment_schedule,
    to_money,
)
from domain.payment.phone import normalize_phone
from infrastructure.cache.request_cache import RequestCache, get_request_cache
from infrastructure.external.api_clients.base import APIConnectionError, APIError, APITimeoutError

logger = get_logger(__name__)

CURRENT_USER_KEY = "/api/user"
# Cached reads that a new payment can change
PAYMENT_CACHE_PREFIXES = ("/api/payment", "/api/enrollments", "/api/dashboard")

NETWORK_ERROR_MESSAGE = "We couldn't reach the server. Please check your connection and try again."
GENERIC_ERROR_MESSAGE = "Something went wrong while processing your payment. Please try again."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CheckoutResult:
    reference_id: str
    redirect_url: Optional[str] = None

    @property
    def next_step(self) -> str:
        """`redirect` to the hosted payment page, else `verify` via the result poller."""
        return "redirect" if self.redirect_url else "verify"


def user_message(exc: BaseException) -> str:
    """Text to show for a checkout failure."""
    if isinstance(exc, BusinessException):
        return exc.message
    if isinstance(exc, (APITimeoutError, APIConnectionError)):
        return NETWORK_ERROR_MESSAGE
    if isinstance(exc, APIError) and exc.message:
        return exc.message
    return GENERIC_ERROR_MESSAGE


class PaymentRequestBuilder:
    def __init__(
        self,
        client: PlatformApi,
        cache: Optional[RequestCache] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.cache = cache if cache is not None else get_request_cache()
        self._clock = clock
        self.plan: Optional[InstallmentPlan] = None

    def select_plan(self, total_amount: Number, months: int) -> InstallmentPlan:
        self.plan = InstallmentPlan.create(total_amount, months)
        return self.plan

    def clear_plan(self) -> None:
        self.plan = None

    def build_request(
        self,
        course_id: int,
        amount: Number,
        payment_type: PaymentType,
        payment_method: PaymentMethod,
        phone: str,
        wallet_type: Optional[WalletType] = None,
        plan: Optional[InstallmentPlan] = None,
    ) -> ProcessPaymentRequest:
        total = to_money(amount)
        if total <= 0:
            raise DomainValidationException("Payment amount must be greater than 0", field="amount")

        installments = None
        if payment_type == PaymentType.INSTALLMENT:
            plan = plan or self.plan
            if plan is None:
                raise InstallmentPlanRequiredException()
            if not plan.matches(total):
                # Price changed after the plan was chosen
                plan = InstallmentPlan.create(total, plan.months)
                self.plan = plan
            installments = [
                InstallmentItem(amount=i.amount, due_date=i.due_date, is_paid=i.is_paid)
                for i in build_installment_schedule(plan.amounts, self._clock())
            ]

        if payment_method == PaymentMethod.MOBILE_WALLET:
            if wallet_type is None:
                raise DomainValidationException("Please select a mobile wallet", field="wallet_type")
            wallet = WalletType(wallet_type)
        else:
            wallet = None

        return ProcessPaymentRequest(
            amount=total,
            course_id=course_id,
            payment_type=payment_type,
            payment_method=payment_method,
            wallet_type=wallet,
            phone=normalize_phone(phone, wallet),
            installments=installments,
        )

    async def submit(
        self,
        course_id: int,
        amount: Number,
        payment_type: PaymentType,
        payment_method: PaymentMethod,
        phone: str,
        wallet_type: Optional[WalletType] = None,
        plan: Optional[InstallmentPlan] = None,
    ) -> CheckoutResult:
        req = self.build_request(
            course_id, amount, payment_type, payment_method, phone, wallet_type=wallet_type, plan=plan,
        )
        logger.info(
            "checkout_submit",
            course_id=course_id,
            payment_type=req.payment_type.value,
            payment_method=req.payment_method.value,
            installments=len(req.installments or []),
        )
        response = await self.client.process_payment(req)
        self.cache.invalidate(*PAYMENT_CACHE_PREFIXES)
        logger.info("checkout_submitted", reference_id=response.reference_id, redirect=bool(response.redirect_url))
        return CheckoutResult(reference_id=response.reference_id, redirect_url=response.redirect_url)

    async def default_phone(self) -> Optional[str]:
        """The signed-in user's phone number to prefill the form, if any."""
        user = await self.cache.fetch(CURRENT_USER_KEY, self.client.get_current_user)
        return user.phone if user is not None else None
