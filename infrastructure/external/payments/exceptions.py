"""
Payment provider errors mapped to BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


def _provider_details(provider: str, provider_code: Optional[str], details: Optional[dict]) -> dict:
    full_details = {"provider": provider}
    if provider_code is not None:
        full_details["provider_code"] = provider_code
    if details:
        full_details.update(details)
    return full_details


class PaymentProviderError(BusinessException):
    """The gateway rejected the call or is not configured"""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=_provider_details(provider, provider_code, details),
        )


class PaymentRecoverableError(BusinessException):
    """Transient gateway failure; the same call may succeed later"""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=_provider_details(provider, provider_code, details),
        )


class PaymentTimeoutError(BusinessException):
    def __init__(self, *, provider: str):
        super().__init__(
            code=PaymentCode.TIMEOUT,
            message="The payment provider did not respond in time. Please try again.",
            error_type="PaymentTimeout",
            details={"provider": provider},
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=_provider_details(provider, None, details),
        )


class InvalidWebhookPayloadError(BusinessException):
    def __init__(self, message: str = "Invalid webhook data", *, provider: str):
        super().__init__(
            code=BusinessCode.PARAM_ERROR,
            message=message,
            error_type="InvalidWebhookPayload",
            details={"provider": provider},
        )
