"""
Payment domain service - intent creation and gateway status reconciliation
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from .entity import (
    Installment,
    PaymentIntent,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    WalletType,
)
from .events import PaymentCompleted, PaymentFailed
from .repository import PaymentRepository
from domain.common.exceptions import PaymentNotFoundException


def generate_reference_id(prefix: str, user_id: Optional[int], course_id: int,
                          now: Optional[datetime] = None) -> str:
    """`<prefix>-<epoch ms>-<user id>-<course id>`"""
    moment = now or datetime.now(timezone.utc)
    return f"{prefix}-{int(moment.timestamp() * 1000)}-{user_id or 0}-{course_id}"


class PaymentDomainService:
    """
    Orchestrates intent lifecycle rules that span the repository:

    1. a new intent always starts pending
    2. gateway status is applied through the entity state machine
    3. lifecycle transitions are recorded as domain events
    """

    def __init__(self, payment_repository: PaymentRepository):
        self.payment_repository = payment_repository
        self.events: List = []

    async def create_intent(
        self,
        *,
        reference_id: str,
        user_id: Optional[int],
        course_id: int,
        course_name: Optional[str],
        amount: Decimal,
        payment_type: PaymentType,
        payment_method: PaymentMethod,
        phone: str,
        wallet_type: Optional[WalletType] = None,
        installments: Optional[List[Installment]] = None,
        gateway: str = "waafipay",
    ) -> PaymentIntent:
        now = datetime.now(timezone.utc)
        intent = PaymentIntent(
            id=None,
            reference_id=reference_id,
            user_id=user_id,
            course_id=course_id,
            course_name=course_name,
            amount=amount,
            payment_type=payment_type,
            payment_method=payment_method,
            phone=phone,
            wallet_type=wallet_type,
            status=PaymentStatus.PENDING,
            installments=list(installments or []),
            gateway=gateway,
            created_at=now,
            updated_at=now,
        )
        return await self.payment_repository.create(intent)

    async def get_intent(self, reference_id: str) -> PaymentIntent:
        intent = await self.payment_repository.get_by_reference_id(reference_id)
        if intent is None:
            raise PaymentNotFoundException(reference_id)
        return intent

    async def apply_gateway_status(
        self,
        reference_id: str,
        status: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> PaymentIntent:
        """Apply a gateway-reported status; duplicates are absorbed by the entity."""
        intent = await self.get_intent(reference_id)
        changed = intent.apply_status(status, transaction_id=transaction_id, reason=reason)
        if not changed:
            return intent

        updated = await self.payment_repository.update(intent)
        if updated.status == PaymentStatus.COMPLETED:
            self.events.append(PaymentCompleted(
                reference_id=updated.reference_id,
                course_id=updated.course_id,
                user_id=updated.user_id,
                transaction_id=updated.transaction_id,
            ))
        else:
            self.events.append(PaymentFailed(
                reference_id=updated.reference_id,
                course_id=updated.course_id,
                user_id=updated.user_id,
                reason=updated.failure_reason,
            ))
        return updated

    async def attach_redirect(self, intent: PaymentIntent, redirect_url: Optional[str]) -> PaymentIntent:
        intent.attach_redirect(redirect_url)
        return await self.payment_repository.update(intent)

    def clear_events(self) -> List:
        events = self.events.copy()
        self.events.clear()
        return events
