"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003

    # Checkout validation (61xxx)
    INVALID_PHONE = 61001
    INSTALLMENT_PLAN_REQUIRED = 61002
    INVALID_INSTALLMENT = 61003
    PAYMENT_NOT_FOUND = 61004
    COURSE_NOT_FOUND = 61005


# Provider -> internal status. Anything unmapped stays pending.
PROVIDER_STATUS_TO_INTERNAL = {
    "waafipay": {
        "PENDING": "pending",
        "COMPLETED": "completed",
        "FAILED": "failed",
        "CANCELLED": "failed",
    },
}
