"""
Payment ORM models - SQLAlchemy mapping
Infrastructure detail only: business rules live in domain.payment.entity.PaymentIntent
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, Numeric, DateTime, Text,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """Row per payment intent"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)

    reference_id = Column(String(100), unique=True, index=True, nullable=False, comment="THUB-<ms>-<user>-<course>")
    user_id = Column(Integer, nullable=True, index=True)
    course_id = Column(Integer, nullable=False, index=True)
    course_name = Column(String(255), nullable=True)

    amount = Column(Numeric(precision=15, scale=2), nullable=False)
    type = Column(String(20), nullable=False, comment="one_time/installment")
    payment_method = Column(String(20), nullable=False, comment="card/mobile_wallet")
    wallet_type = Column(String(20), nullable=True, comment="EVCPlus/ZAAD/SAHAL/WAAFI")
    phone = Column(String(32), nullable=False)

    status = Column(String(20), nullable=False, default="pending", index=True, comment="pending/completed/failed")
    gateway = Column(String(50), nullable=False, default="waafipay")
    transaction_id = Column(String(200), nullable=True, index=True)
    redirect_url = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="payment_date")

    installments = relationship(
        "InstallmentModel",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="InstallmentModel.installment_number",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_payments_user_status", "user_id", "status"),
        Index("ix_payments_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, reference_id='{self.reference_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )


class InstallmentModel(Base):
    """Scheduled installment of an installment payment"""
    __tablename__ = "installments"

    id = Column(Integer, primary_key=True, index=True)

    payment_id = Column(
        Integer,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installment_number = Column(Integer, nullable=False, default=1)
    amount = Column(Numeric(precision=15, scale=2), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    payment = relationship("PaymentModel", back_populates="installments")

    __table_args__ = (
        Index("ix_installments_payment_number", "payment_id", "installment_number", unique=True),
    )

    def __repr__(self):
        return (
            f"<InstallmentModel(id={self.id}, payment_id={self.payment_id}, "
            f"number={self.installment_number}, amount={self.amount}, is_paid={self.is_paid})>"
        )
