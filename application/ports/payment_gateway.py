"""
Payment gateway and course catalog ports (application/ports).

Application depends on these Protocols; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CourseSummary,
    GatewayPaymentRequest,
    GatewayPaymentResult,
    GatewayVerification,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def create_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult: ...

    async def verify_payment(self, reference_id: str) -> Optional[GatewayVerification]: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...


@runtime_checkable
class CourseCatalog(Protocol):
    """Read-only course lookup; None when the course does not exist."""

    async def get_course(self, course_id: int) -> Optional[CourseSummary]: ...
