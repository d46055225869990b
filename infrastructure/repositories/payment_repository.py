"""
Payment repository - SQLAlchemy implementation of the domain port
"""
from typing import Optional, List
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from domain.common.exceptions import PaymentAlreadyExistsException
from domain.payment.entity import (
    Installment,
    PaymentIntent,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    WalletType,
)
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import InstallmentModel, PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> PaymentIntent:
        return PaymentIntent(
            id=model.id,
            reference_id=model.reference_id,
            user_id=model.user_id,
            course_id=model.course_id,
            course_name=model.course_name,
            amount=Decimal(str(model.amount)),
            payment_type=PaymentType(model.type),
            payment_method=PaymentMethod(model.payment_method),
            wallet_type=WalletType(model.wallet_type) if model.wallet_type else None,
            phone=model.phone,
            status=PaymentStatus(model.status),
            installments=[
                Installment(
                    amount=Decimal(str(i.amount)),
                    due_date=i.due_date,
                    is_paid=i.is_paid,
                    installment_number=i.installment_number,
                    paid_at=i.paid_at,
                )
                for i in model.installments
            ],
            transaction_id=model.transaction_id,
            redirect_url=model.redirect_url,
            gateway=model.gateway,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
        )

    def _to_model(self, entity: PaymentIntent) -> PaymentModel:
        return PaymentModel(
            reference_id=entity.reference_id,
            user_id=entity.user_id,
            course_id=entity.course_id,
            course_name=entity.course_name,
            amount=entity.amount,
            type=entity.payment_type.value,
            payment_method=entity.payment_method.value,
            wallet_type=entity.wallet_type.value if entity.wallet_type else None,
            phone=entity.phone,
            status=entity.status.value,
            gateway=entity.gateway,
            transaction_id=entity.transaction_id,
            redirect_url=entity.redirect_url,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at or datetime.now(timezone.utc),
            updated_at=entity.updated_at or datetime.now(timezone.utc),
            paid_at=entity.paid_at,
            installments=[
                InstallmentModel(
                    installment_number=i.installment_number,
                    amount=i.amount,
                    due_date=i.due_date,
                    is_paid=i.is_paid,
                    paid_at=i.paid_at,
                )
                for i in entity.installments
            ],
        )

    async def _get_model(self, reference_id: str) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel)
            .options(selectinload(PaymentModel.installments))
            .where(PaymentModel.reference_id == reference_id)
        )
        return result.scalar_one_or_none()

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        db_payment = self._to_model(intent)
        self.session.add(db_payment)
        try:
            await self.session.flush()
        except IntegrityError as e:
            if "reference_id" in str(e).lower():
                logger.warning("payment_create_conflict", reference_id=intent.reference_id)
                raise PaymentAlreadyExistsException(intent.reference_id) from e
            raise
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            reference_id=db_payment.reference_id,
            type=db_payment.type,
            installments=len(intent.installments),
        )
        intent.id = db_payment.id
        return intent

    async def get_by_reference_id(self, reference_id: str) -> Optional[PaymentIntent]:
        db_payment = await self._get_model(reference_id)
        return self._to_entity(db_payment) if db_payment else None

    async def list_by_user(
        self,
        user_id: int,
        status: Optional[PaymentStatus] = None,
        limit: int = 100,
    ) -> List[PaymentIntent]:
        query = (
            select(PaymentModel)
            .options(selectinload(PaymentModel.installments))
            .where(PaymentModel.user_id == user_id)
        )
        if status:
            query = query.where(PaymentModel.status == status.value)
        query = query.order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc()).limit(limit)

        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, intent: PaymentIntent) -> PaymentIntent:
        db_payment = await self._get_model(intent.reference_id)
        if not db_payment:
            raise ValueError(f"Payment {intent.reference_id} not found")

        db_payment.status = intent.status.value
        db_payment.transaction_id = intent.transaction_id
        db_payment.redirect_url = intent.redirect_url
        db_payment.failure_reason = intent.failure_reason
        db_payment.updated_at = intent.updated_at or datetime.now(timezone.utc)
        db_payment.paid_at = intent.paid_at

        paid = {i.installment_number: i for i in intent.installments}
        for row in db_payment.installments:
            source = paid.get(row.installment_number)
            if source is not None:
                row.is_paid = source.is_paid
                row.paid_at = source.paid_at

        await self.session.flush()

        logger.info(
            "payment_updated",
            payment_id=db_payment.id,
            reference_id=db_payment.reference_id,
            status=db_payment.status,
        )
        return intent
