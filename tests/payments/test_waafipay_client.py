import json
from datetime import datetime, timezone
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from application.dtos.payments import GatewayPaymentRequest
from core.settings import WaafiPaySettings
from domain.payment.entity import PaymentMethod, PaymentStatus, WalletType
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.exceptions import (
    InvalidWebhookPayloadError,
    PaymentProviderError,
    PaymentSignatureError,
)
from infrastructure.external.payments.waafipay_client import (
    WaafiPayClient,
    format_amount,
    sign,
    webhook_signing_string,
)


CONFIG = WaafiPaySettings(
    api_url="https://api.waafi.test/v2",
    hpp_url="https://pay.waafi.test",
    api_key="key_123",
    merchant_id="M001",
    webhook_secret="whsec_123",
    app_url="https://learn.example.test",
)


def gateway_request(**overrides):
    fields = dict(
        reference_id="THUB-1700000000000-1-7",
        amount=Decimal("100.00"),
        currency="USD",
        description="Payment for Intro to Python",
        customer_name="Amina Ali",
        customer_email="amina@example.test",
        customer_phone="+252617123456",
        payment_method=PaymentMethod.MOBILE_WALLET,
        wallet_type=WalletType.EVCPLUS,
    )
    fields.update(overrides)
    return GatewayPaymentRequest(**fields)


def signed_body(payload: dict, secret: str = "whsec_123") -> bytes:
    payload = dict(payload)
    payload["signature"] = sign(secret, webhook_signing_string(payload))
    return json.dumps(payload).encode()


WEBHOOK = {
    "transactionId": "TX-9",
    "referenceId": "THUB-1700000000000-1-7",
    "status": "COMPLETED",
    "amount": 100,
    "currency": "USD",
    "paymentMethod": "mobile_wallet",
    "timestamp": "2026-03-01T10:00:00Z",
}

WEBHOOK_SENT_AT = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc).timestamp()


def test_factory_returns_waafipay():
    assert isinstance(get_payment_gateway("waafipay"), WaafiPayClient)
    with pytest.raises(ValueError):
        get_payment_gateway("stripe")


def test_format_amount():
    assert format_amount(Decimal("100.00")) == "100"
    assert format_amount(Decimal("33.50")) == "33.5"


async def test_hosted_page_url_is_signed():
    client = WaafiPayClient(CONFIG, clock=lambda: 1_700_000_000.0)
    result = await client.create_payment(gateway_request())

    assert result.status == PaymentStatus.PENDING
    url = urlparse(result.redirect_url)
    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://pay.waafi.test/pay"
    params = {k: v[0] for k, v in parse_qs(url.query).items()}
    assert params["timestamp"] == "1700000000000"
    assert params["amount"] == "100"
    assert params["wallet_type"] == "EVCPlus"
    assert params["redirect_url"] == "https://learn.example.test/payment/success?ref=THUB-1700000000000-1-7"
    assert params["callback_url"] == "https://learn.example.test/api/payment/webhook"
    assert params["signature"] == sign("key_123", "M001|THUB-1700000000000-1-7|100|1700000000000")


async def test_missing_credentials_fail_closed():
    client = WaafiPayClient(CONFIG.model_copy(update={"api_key": None}))
    with pytest.raises(PaymentProviderError) as exc_info:
        await client.create_payment(gateway_request())
    assert exc_info.value.message == "Payment service is not configured. Please contact support."


async def test_direct_payment_posts_to_api():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "PENDING", "transactionId": "TX-1", "paymentUrl": "https://p"})

    client = WaafiPayClient(
        CONFIG.model_copy(update={"use_hosted_page": False}),
        transport=httpx.MockTransport(handler),
    )
    result = await client.create_payment(gateway_request(payment_method=PaymentMethod.CARD, wallet_type=None))
    await client.aclose()

    assert seen["url"] == "https://api.waafi.test/v2/payments"
    assert seen["auth"] == "Bearer key_123"
    assert seen["body"]["referenceId"] == "THUB-1700000000000-1-7"
    assert "walletType" not in seen["body"]
    assert result.transaction_id == "TX-1"
    assert result.redirect_url == "https://p"


async def test_direct_payment_decline():
    def handler(request):
        return httpx.Response(402, json={"code": "INSUFFICIENT_FUNDS", "message": "Insufficient balance"})

    client = WaafiPayClient(
        CONFIG.model_copy(update={"use_hosted_page": False}),
        transport=httpx.MockTransport(handler),
    )
    with pytest.raises(PaymentProviderError) as exc_info:
        await client.create_payment(gateway_request())
    await client.aclose()
    assert exc_info.value.message == "Insufficient balance"
    assert exc_info.value.details["provider_code"] == "INSUFFICIENT_FUNDS"


@pytest.mark.parametrize(
    "provider_status,expected",
    [
        ("COMPLETED", PaymentStatus.COMPLETED),
        ("FAILED", PaymentStatus.FAILED),
        ("CANCELLED", PaymentStatus.FAILED),
        ("PENDING", PaymentStatus.PENDING),
        ("SOMETHING_NEW", PaymentStatus.PENDING),
    ],
)
async def test_verify_maps_status(provider_status, expected):
    def handler(request):
        return httpx.Response(200, json={"status": provider_status, "amount": 100, "transactionId": "TX-9"})

    client = WaafiPayClient(CONFIG, transport=httpx.MockTransport(handler))
    verification = await client.verify_payment("THUB-1700000000000-1-7")
    await client.aclose()
    assert verification.status == expected
    assert verification.amount == Decimal("100")


async def test_verify_unknown_reference():
    client = WaafiPayClient(CONFIG, transport=httpx.MockTransport(lambda r: httpx.Response(404)))
    assert await client.verify_payment("nope") is None
    await client.aclose()


def test_webhook_with_valid_signature():
    client = WaafiPayClient(CONFIG, clock=lambda: WEBHOOK_SENT_AT + 30)
    event = client.parse_webhook({}, signed_body(WEBHOOK))
    assert event.id == "TX-9:COMPLETED"
    assert event.type == "payment.completed"
    assert event.status == PaymentStatus.COMPLETED
    assert event.reference_id == "THUB-1700000000000-1-7"
    assert event.transaction_id == "TX-9"


def test_stale_webhook_is_rejected():
    client = WaafiPayClient(CONFIG, clock=lambda: WEBHOOK_SENT_AT + 301, tolerance_seconds=300)
    with pytest.raises(PaymentSignatureError) as exc_info:
        client.parse_webhook({}, signed_body(WEBHOOK))
    assert exc_info.value.message == "Webhook timestamp outside tolerance"


def test_webhook_without_timestamp_is_accepted():
    payload = {k: v for k, v in WEBHOOK.items() if k != "timestamp"}
    client = WaafiPayClient(CONFIG, clock=lambda: WEBHOOK_SENT_AT + 86400)
    assert client.parse_webhook({}, signed_body(payload)).status == PaymentStatus.COMPLETED


def test_webhook_with_wrong_signature():
    client = WaafiPayClient(CONFIG)
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({}, signed_body(WEBHOOK, secret="someone-else"))


def test_webhook_without_signature_when_secret_configured():
    client = WaafiPayClient(CONFIG)
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({}, json.dumps(WEBHOOK).encode())


def test_webhook_signature_skipped_without_secret():
    client = WaafiPayClient(CONFIG.model_copy(update={"webhook_secret": None}))
    event = client.parse_webhook({}, json.dumps({**WEBHOOK, "status": "CANCELLED"}).encode())
    assert event.status == PaymentStatus.FAILED


@pytest.mark.parametrize("body", [b"not json", b"[]", json.dumps({"referenceId": "X"}).encode()])
def test_webhook_invalid_payload(body):
    client = WaafiPayClient(CONFIG)
    with pytest.raises(InvalidWebhookPayloadError) as exc_info:
        client.parse_webhook({}, body)
    assert exc_info.value.message == "Invalid webhook data"
