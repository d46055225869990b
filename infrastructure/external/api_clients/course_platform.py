"""
Course platform REST API client.

Used by the checkout flow (process, verify, current user) and, on the
server side, as the course catalog behind PaymentService.
"""
from typing import Any, Dict, Optional

import httpx

from application.dtos.payments import (
    CourseSummary,
    PlatformUser,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    VerifyPaymentResponse,
)
from core.config import settings
from core.logging_config import get_logger

from .base import APIResponse, AuthenticationError, BaseAPIClient, NotFoundError

logger = get_logger(__name__)


def _unwrap(response: APIResponse) -> Any:
    """Accept both bare JSON bodies and the `{code, message, data}` envelope."""
    body = response.json()
    if isinstance(body, dict) and "code" in body and "data" in body:
        return body["data"]
    return body


class CoursePlatformClient(BaseAPIClient):
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        cookies: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        cfg = settings.platform
        kwargs.setdefault("timeout", cfg.timeout)
        kwargs.setdefault("max_retries", cfg.max_retries)
        kwargs.setdefault("retry_delay", cfg.retry_delay)
        kwargs.setdefault("retry_max_delay", cfg.retry_max_delay)
        super().__init__(
            base_url=base_url or cfg.base_url,
            cookies=cookies,
            auth_token=auth_token,
            transport=transport,
            **kwargs,
        )

    async def process_payment(self, req: ProcessPaymentRequest) -> ProcessPaymentResponse:
        response = await self.post("/api/payment/process", json_data=req)
        return ProcessPaymentResponse.model_validate(_unwrap(response))

    async def verify_payment(self, reference_id: str) -> VerifyPaymentResponse:
        response = await self.get(f"/api/payment/verify/{reference_id}")
        return VerifyPaymentResponse.model_validate(_unwrap(response))

    async def get_current_user(self) -> Optional[PlatformUser]:
        """The signed-in user, or None when the session is missing or expired."""
        try:
            response = await self.get("/api/user")
        except AuthenticationError as exc:
            if exc.status_code == 401:
                return None
            raise
        data = _unwrap(response)
        return PlatformUser.model_validate(data) if data else None

    async def get_course(self, course_id: int) -> Optional[CourseSummary]:
        try:
            response = await self.get(f"/api/courses/{course_id}")
        except NotFoundError:
            logger.info("course_not_found", course_id=course_id)
            return None
        return CourseSummary.model_validate(_unwrap(response))
