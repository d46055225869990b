"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers subclass it and implement the gateway protocol.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    GatewayPaymentRequest,
    GatewayPaymentResult,
    GatewayVerification,
    WebhookEvent,
)
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentTimeoutError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

R = TypeVar("R")


class _TransientStatus(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"transient status {response.status_code}")


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 3.0, "read": 10.0, "write": 10.0, "total": 30.0}
        self._retry_cfg = retry or {"max": 1, "base": 0.5}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            pool=self._timeouts_cfg["total"],
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Send with retry on network errors and 5xx.

        4xx responses are returned to the caller, which decides what they mean.
        """
        async def _once() -> httpx.Response:
            response = await self.client.request(method, url, **kwargs)
            if response.status_code >= 500 or response.status_code == 429:
                raise _TransientStatus(response)
            return response

        try:
            return await self._retry(_once)
        except httpx.TimeoutException as exc:
            self._log("payment_provider_timeout", url=url)
            raise PaymentTimeoutError(provider=self.provider) from exc
        except httpx.TransportError as exc:
            self._log("payment_provider_unreachable", url=url, error=str(exc))
            raise PaymentRecoverableError(
                "The payment provider is unreachable. Please try again.", provider=self.provider
            ) from exc
        except _TransientStatus as exc:
            status = exc.response.status_code
            self._log("payment_provider_unavailable", url=url, status_code=status)
            raise PaymentRecoverableError(
                "The payment provider is temporarily unavailable. Please try again.",
                provider=self.provider,
                provider_code=str(status),
            ) from exc

    async def _retry(self, fn: Callable[[], Awaitable[R]]) -> R:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], max=5.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, _TransientStatus)),
            reraise=True,
        ):
            with attempt:
                return await fn()
        raise PaymentProviderError("Request was not attempted", provider=self.provider)  # pragma: no cover

    async def create_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        raise NotImplementedError

    async def verify_payment(self, reference_id: str) -> Optional[GatewayVerification]:
        raise NotImplementedError

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: Optional[str]) -> PaymentStatus:
        """Provider status to internal status; anything unknown is still pending."""
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return PaymentStatus(mapping.get((provider_status or "").upper(), PaymentStatus.PENDING.value))

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
