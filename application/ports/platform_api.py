"""
Course platform API port used by the checkout flow.

infrastructure.external.api_clients.CoursePlatformClient implements it;
tests substitute stubs.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    PlatformUser,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    VerifyPaymentResponse,
)


@runtime_checkable
class PlatformApi(Protocol):
    async def process_payment(self, req: ProcessPaymentRequest) -> ProcessPaymentResponse: ...

    async def verify_payment(self, reference_id: str) -> VerifyPaymentResponse: ...

    async def get_current_user(self) -> Optional[PlatformUser]: ...
