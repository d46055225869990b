"""
WaafiPay adapter.

Two ways to start a payment:
- hosted payment page (default): a signed URL the customer is redirected to,
  no server-to-server call;
- direct API: `POST {api_url}/payments`.

Status is read back with `GET {api_url}/payments/{id}` and pushed to us by
webhook. HPP parameters are signed with HMAC-SHA256 over
`merchant|reference|amount|timestamp` using the API key; webhooks with
HMAC-SHA256 over the compact JSON payload without its `signature` field,
using the webhook secret; a signed webhook whose `timestamp` is further than
the webhook tolerance from our clock is rejected.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx

from application.dtos.payments import (
    GatewayPaymentRequest,
    GatewayPaymentResult,
    GatewayVerification,
    WebhookEvent,
)
from core.logging_config import get_logger
from core.settings import WaafiPaySettings, payment_settings
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    InvalidWebhookPayloadError,
    PaymentProviderError,
    PaymentSignatureError,
)


logger = get_logger(__name__)


def format_amount(amount: Decimal) -> str:
    """Shortest plain decimal: 100.00 -> "100", 33.50 -> "33.5"."""
    return format(Decimal(amount).normalize(), "f")


def sign(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def webhook_signing_string(payload: dict[str, Any]) -> str:
    """Compact JSON of the payload minus `signature`, keys in received order."""
    unsigned = {k: v for k, v in payload.items() if k != "signature"}
    return json.dumps(unsigned, separators=(",", ":"), ensure_ascii=False)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class WaafiPayClient(BasePaymentClient):
    provider = "waafipay"

    def __init__(
        self,
        config: Optional[WaafiPaySettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
        tolerance_seconds: Optional[int] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self.config = config or payment_settings.waafipay
        self.currency = payment_settings.currency
        self._clock = clock
        self.tolerance_seconds = (
            payment_settings.webhook.tolerance_seconds if tolerance_seconds is None else tolerance_seconds
        )

    # Credentials are checked per call so the app can start without them
    def _credentials(self) -> tuple[str, str]:
        if not (self.config.api_key and self.config.merchant_id):
            raise PaymentProviderError(
                "Payment service is not configured. Please contact support.",
                provider=self.provider,
                provider_code="credentials_missing",
            )
        return self.config.api_key, self.config.merchant_id

    def _headers(self) -> dict[str, str]:
        api_key, merchant_id = self._credentials()
        return {
            "Authorization": f"Bearer {api_key}",
            "x-merchant-id": merchant_id,
            "Accept": "application/json",
        }

    def redirect_url(self, reference_id: str) -> str:
        if self.config.redirect_url:
            return self.config.redirect_url
        return f"{self.config.app_url.rstrip('/')}/payment/success?{urlencode({'ref': reference_id})}"

    def callback_url(self) -> str:
        if self.config.callback_url:
            return self.config.callback_url
        return f"{self.config.app_url.rstrip('/')}/api/payment/webhook"

    def hosted_payment_url(self, req: GatewayPaymentRequest) -> str:
        api_key, merchant_id = self._credentials()
        timestamp = str(int(self._clock() * 1000))
        amount = format_amount(req.amount)
        signature = sign(api_key, f"{merchant_id}|{req.reference_id}|{amount}|{timestamp}")

        params = {
            "merchant_id": merchant_id,
            "amount": amount,
            "currency": req.currency or self.currency,
            "reference_id": req.reference_id,
            "description": req.description,
            "customer_name": req.customer_name or "",
            "customer_email": req.customer_email or "",
            "customer_phone": req.customer_phone,
            "redirect_url": self.redirect_url(req.reference_id),
            "callback_url": self.callback_url(),
            "timestamp": timestamp,
            "signature": signature,
        }
        if req.payment_method:
            params["payment_method"] = req.payment_method.value
        if req.wallet_type:
            params["wallet_type"] = req.wallet_type.value
        return f"{self.config.hpp_url.rstrip('/')}/pay?{urlencode(params)}"

    async def create_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        if self.config.use_hosted_page:
            url = self.hosted_payment_url(req)
            self._log("payment_hpp_url_generated", reference_id=req.reference_id)
            return GatewayPaymentResult(
                reference_id=req.reference_id,
                provider=self.provider,
                status=PaymentStatus.PENDING,
                redirect_url=url,
            )
        return await self._direct_payment(req)

    async def _direct_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        headers = self._headers()
        payload = {
            "amount": float(req.amount),
            "currency": req.currency or self.currency,
            "description": req.description,
            "customerName": req.customer_name,
            "customerEmail": req.customer_email,
            "customerPhone": req.customer_phone,
            "referenceId": req.reference_id,
            "paymentMethod": req.payment_method.value,
            "walletType": req.wallet_type.value if req.wallet_type else None,
            "merchantId": self.config.merchant_id,
            "redirectUrl": self.redirect_url(req.reference_id),
            "callbackUrl": self.callback_url(),
        }
        payload = {k: v for k, v in payload.items() if v is not None}
        url = f"{self.config.api_url.rstrip('/')}/payments"

        response = await self._send("POST", url, json=payload, headers=headers)
        data = self._json(response)
        if response.status_code >= 400:
            raise PaymentProviderError(
                str(data.get("message") or "Payment was declined by the provider"),
                provider=self.provider,
                provider_code=str(data.get("code") or response.status_code),
            )

        status = self._map_status(data.get("status"))
        self._log("payment_direct_created", reference_id=req.reference_id, status=status.value)
        return GatewayPaymentResult(
            reference_id=req.reference_id,
            provider=self.provider,
            status=status,
            redirect_url=data.get("redirectUrl") or data.get("paymentUrl"),
            transaction_id=data.get("transactionId"),
            raw=data,
        )

    async def verify_payment(self, reference_id: str) -> Optional[GatewayVerification]:
        headers = self._headers()
        url = f"{self.config.api_url.rstrip('/')}/payments/{reference_id}"
        response = await self._send("GET", url, headers=headers)
        if response.status_code == 404:
            return None
        data = self._json(response)
        if response.status_code >= 400:
            raise PaymentProviderError(
                str(data.get("message") or "Payment verification failed"),
                provider=self.provider,
                provider_code=str(response.status_code),
            )
        amount = data.get("amount")
        return GatewayVerification(
            reference_id=str(data.get("referenceId") or reference_id),
            provider=self.provider,
            status=self._map_status(data.get("status")),
            amount=Decimal(str(amount)) if amount is not None else None,
            transaction_id=data.get("transactionId"),
            payment_method=data.get("paymentMethod"),
            paid_at=_parse_datetime(data.get("timestamp") or data.get("paidAt")),
            raw=data,
        )

    def verify_webhook_signature(self, payload: dict[str, Any]) -> None:
        secret = self.config.webhook_secret
        if not secret:
            logger.warning("payment_webhook_signature_skipped", provider=self.provider, reason="no secret configured")
            return
        received = payload.get("signature")
        if not received:
            raise PaymentSignatureError("Missing webhook signature", provider=self.provider)
        expected = sign(secret, webhook_signing_string(payload))
        if not hmac.compare_digest(expected, str(received)):
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)
        self._check_freshness(payload)

    def _check_freshness(self, payload: dict[str, Any]) -> None:
        sent_at = _parse_datetime(payload.get("timestamp"))
        if sent_at is None:
            return
        if sent_at.tzinfo is None:
            sent_at = sent_at.replace(tzinfo=timezone.utc)
        skew = abs(self._clock() - sent_at.timestamp())
        if skew > self.tolerance_seconds:
            raise PaymentSignatureError(
                "Webhook timestamp outside tolerance",
                provider=self.provider,
                details={"skew_seconds": int(skew)},
            )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        try:
            payload = json.loads(body or b"{}")
        except ValueError as exc:
            raise InvalidWebhookPayloadError(provider=self.provider) from exc
        if not isinstance(payload, dict) or not payload.get("transactionId") or not payload.get("referenceId"):
            raise InvalidWebhookPayloadError(provider=self.provider)

        self.verify_webhook_signature(payload)

        provider_status = str(payload.get("status") or "PENDING").upper()
        transaction_id = str(payload["transactionId"])
        return WebhookEvent(
            id=f"{transaction_id}:{provider_status}",
            type=f"payment.{provider_status.lower()}",
            provider=self.provider,
            reference_id=str(payload["referenceId"]),
            status=self._map_status(provider_status),
            transaction_id=transaction_id,
            data=payload,
            raw_headers=headers,
            raw_body=body,
        )

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
