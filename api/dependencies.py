"""
API dependencies - authentication and service wiring
"""
from typing import AsyncGenerator, Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.dtos.payments import PlatformUser
from application.services.payment_service import PaymentService
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger
from infrastructure.external.api_clients import CoursePlatformClient
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)

# HTTP Bearer for direct API calls; browsers send the session cookie instead
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    request: Request,
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """Extract the token from the Authorization header or the session cookie"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials

    cookie_token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if cookie_token:
        return cookie_token

    raise UnauthorizedException("Authentication required")


def decode_user(token: str) -> PlatformUser:
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError as exc:
        logger.info("token_rejected", error=str(exc))
        raise UnauthorizedException("Invalid authentication credentials")

    user_id = claims.get("sub", claims.get("id"))
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise UnauthorizedException("Invalid authentication credentials")

    return PlatformUser(
        id=user_id,
        name=claims.get("name"),
        email=claims.get("email"),
        phone=claims.get("phone"),
        role=claims.get("role") or "student",
    )


async def get_current_user(token: str = Depends(get_token)) -> PlatformUser:
    """Current signed-in user, taken from the JWT claims"""
    user = decode_user(token)
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user


async def get_payment_service() -> AsyncGenerator[PaymentService, None]:
    """Payment service wired to the configured gateway, the database and the course catalog"""
    catalog = CoursePlatformClient()
    service = PaymentService(
        gateway=get_payment_gateway(),
        uow_factory=SQLAlchemyUnitOfWork,
        catalog=catalog,
    )
    try:
        yield service
    finally:
        await service.aclose()
        await catalog.close()
