"""
Payment DTOs (Pydantic v2) used at application boundaries.

Wire models use camelCase aliases because the platform REST API does;
Python code reads them by field name.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from domain.payment.entity import PaymentMethod, PaymentStatus, PaymentType, WalletType

# Amounts travel as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InstallmentItem(CamelModel):
    amount: Money
    due_date: datetime
    is_paid: bool = False


class ProcessPaymentRequest(CamelModel):
    amount: Money = Field(gt=0)
    course_id: int
    payment_type: PaymentType
    payment_method: PaymentMethod
    wallet_type: Optional[WalletType] = None
    phone: str = Field(min_length=1)
    installments: Optional[list[InstallmentItem]] = None

    @field_validator("amount")
    @classmethod
    def _two_places(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"))

    @model_validator(mode="after")
    def _check_shape(self):
        if self.payment_method == PaymentMethod.MOBILE_WALLET and self.wallet_type is None:
            raise ValueError("walletType is required for mobile wallet payments")
        if self.payment_method == PaymentMethod.CARD and self.wallet_type is not None:
            raise ValueError("walletType is only valid for mobile wallet payments")
        if self.payment_type == PaymentType.INSTALLMENT and not self.installments:
            raise ValueError("installments are required for installment payments")
        if self.payment_type == PaymentType.ONE_TIME and self.installments:
            raise ValueError("installments are only valid for installment payments")
        return self


class ProcessPaymentResponse(CamelModel):
    reference_id: str
    redirect_url: Optional[str] = None


class PaymentDetails(CamelModel):
    status: PaymentStatus
    course_name: Optional[str] = None
    amount: Optional[Money] = None
    payment_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    wallet_type: Optional[WalletType] = None
    type: PaymentType = PaymentType.ONE_TIME
    installments: Optional[list[InstallmentItem]] = None


class VerifyPaymentResponse(CamelModel):
    payment: PaymentDetails


class CourseSummary(CamelModel):
    id: int
    title: str
    price: Money
    is_published: bool = True

    model_config = ConfigDict(extra="ignore")


class PlatformUser(CamelModel):
    """Signed-in user as reported by the platform (`/api/user`) or the access token."""

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str = "student"

    model_config = ConfigDict(extra="ignore")

    @property
    def is_staff(self) -> bool:
        return self.role in ("admin", "teacher")


# Gateway-facing DTOs (adapter boundary, snake_case only)


class GatewayPaymentRequest(BaseModel):
    reference_id: str
    amount: Decimal = Field(gt=0)
    currency: str = "USD"
    description: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: str
    payment_method: PaymentMethod
    wallet_type: Optional[WalletType] = None


class GatewayPaymentResult(BaseModel):
    reference_id: str
    provider: str
    status: PaymentStatus = PaymentStatus.PENDING
    redirect_url: Optional[str] = None
    transaction_id: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


class GatewayVerification(BaseModel):
    reference_id: str
    provider: str
    status: PaymentStatus
    amount: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    raw: Optional[dict[str, Any]] = None


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    reference_id: str
    status: PaymentStatus
    transaction_id: Optional[str] = None
    data: dict[str, Any]
    # raw fields for traceability (optional)
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)
