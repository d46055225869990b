"""
Payments API routes.

Process, verify and webhook endpoints. Keep this thin: gateway details
live behind the application service.
"""
from __future__ import annotations

import hashlib
import ipaddress

from fastapi import APIRouter, Depends, HTTPException, Request

from api.dependencies import get_current_user, get_payment_service
from application.dtos.payments import PlatformUser, ProcessPaymentRequest
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.cache import get_redis_cache


router = APIRouter(prefix="/payment", tags=["Payments"])
logger = get_logger(__name__)


def _ip_permitted(remote_ip: str, allowlist: list[str]) -> bool:
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


@router.post("/process", summary="Create a payment intent")
async def process_payment(
    payload: ProcessPaymentRequest,
    user: PlatformUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.process_payment(payload, user)
    return success_response(
        data=result.model_dump(mode="json", by_alias=True),
        message="Payment initiated",
    )


@router.get("/verify/{reference_id}", summary="Payment status")
async def verify_payment(
    reference_id: str,
    user: PlatformUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.verify_payment(reference_id, user)
    return success_response(data=result.model_dump(mode="json", by_alias=True))


@router.post("/webhook", summary="Gateway notification")
async def payment_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    allowlist = payment_settings.webhook.ip_allowlist or []
    if allowlist:
        remote_ip = request.client.host if request.client else ""
        if not _ip_permitted(remote_ip, allowlist):
            logger.warning("webhook_ip_rejected", remote_ip=remote_ip)
            raise HTTPException(status_code=403, detail="Webhook source not allowed")

    raw_body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}

    cache = await get_redis_cache()
    key = None
    if cache is not None:
        # Gateways redeliver on timeouts; the same body is only applied once
        body_hash = hashlib.sha256(raw_body or b"{}").hexdigest()
        key = f"webhook:{service.gateway.provider}:{body_hash}"
        ttl = max(60, int(payment_settings.webhook.tolerance_seconds))
        if not await cache.set_if_absent(key, 1, ttl=ttl):
            logger.info("webhook_duplicate_ignored", provider=service.gateway.provider)
            return {"success": True, "duplicate": True}

    try:
        event = await service.handle_webhook(headers, raw_body)
    except Exception:
        # Let the gateway redeliver
        if key is not None:
            await cache.delete(key)
        raise
    logger.info("webhook_acknowledged", event_id=event.id, reference_id=event.reference_id)
    return {"success": True}
