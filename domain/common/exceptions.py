"""Business exceptions shared by the domain, application and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports core.
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business errors"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class InvalidPhoneNumberException(BusinessException):
    def __init__(self, phone: Optional[str], reason: str = "Please enter a valid phone number"):
        super().__init__(
            code=PaymentCode.INVALID_PHONE,
            message=reason,
            error_type="InvalidPhoneNumber",
            details={"phone": phone},
            field="phone",
        )


class InstallmentPlanRequiredException(BusinessException):
    def __init__(self):
        super().__init__(
            code=PaymentCode.INSTALLMENT_PLAN_REQUIRED,
            message="Please select an installment plan before proceeding.",
            error_type="InstallmentPlanRequired",
            field="installments",
        )


class InvalidInstallmentArgumentException(BusinessException):
    def __init__(self, message: str, *, field: str, value=None):
        super().__init__(
            code=PaymentCode.INVALID_INSTALLMENT,
            message=message,
            error_type="InvalidInstallmentArgument",
            details={field: str(value)},
            field=field,
        )


class PaymentNotFoundException(BusinessException):
    def __init__(self, reference_id: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message="Payment not found",
            error_type="PaymentNotFound",
            details={"reference_id": reference_id},
        )


class CourseNotFoundException(BusinessException):
    def __init__(self, course_id: int):
        super().__init__(
            code=PaymentCode.COURSE_NOT_FOUND,
            message="Course not found",
            error_type="CourseNotFound",
            details={"course_id": course_id},
        )


class PaymentAlreadyExistsException(BusinessException):
    def __init__(self, reference_id: str):
        super().__init__(
            code=BusinessCode.CONFLICT,
            message="A payment with this reference already exists",
            error_type="PaymentAlreadyExists",
            details={"reference_id": reference_id},
        )
