"""
Exception to HTTP mapping and global exception handlers
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import traceback
import uuid
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


class UnauthorizedException(BusinessException):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
        )


class TokenExpiredException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.TOKEN_EXPIRED,
            message="Session expired, please sign in again",
            error_type="TokenExpired",
        )


_STATUS_BY_CODE = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_MISSING: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

    BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.CONFLICT: http_status.HTTP_409_CONFLICT,
    BusinessCode.TOKEN_INVALID: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.TOKEN_EXPIRED: http_status.HTTP_401_UNAUTHORIZED,

    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,

    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.DATABASE_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.NETWORK_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    BusinessCode.TOO_MANY_REQUESTS: http_status.HTTP_429_TOO_MANY_REQUESTS,

    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
    PaymentCode.INVALID_PHONE: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.INSTALLMENT_PLAN_REQUIRED: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.INVALID_INSTALLMENT: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.PAYMENT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    PaymentCode.COURSE_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
}


def business_code_to_http_status(code: int) -> int:
    """Map a business code to an HTTP status (400 by default)."""
    return _STATUS_BY_CODE.get(code, http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    Register global exception handlers

    Args:
        app: FastAPI application
    """

    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        request_id = _request_id(request)
        response = error_response(
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=request_id,
        )
        status_code = business_code_to_http_status(exc.code)
        if status_code >= 500:
            logger.warning("business_exception", request_id=request_id, code=exc.code, error=exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = _request_id(request)
        errors = exc.errors()

        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        # Missing body fields are a 400 with a fixed message, other problems a 422
        missing = any(err.get("type") == "missing" for err in errors)
        if missing:
            code = BusinessCode.PARAM_MISSING
            message = "Missing required payment information"
            status_code = http_status.HTTP_400_BAD_REQUEST
        else:
            code = BusinessCode.PARAM_VALIDATION_ERROR
            message = f"Validation failed: {first_error.get('msg', 'unknown')}"
            status_code = http_status.HTTP_422_UNPROCESSABLE_ENTITY

        response = error_response(
            code=code,
            message=message,
            error_type="ValidationError",
            details={"errors": [
                {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
                for err in errors
            ]},
            field=field,
            request_id=request_id,
        )
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        request_id = _request_id(request)

        code_mapping = {
            400: BusinessCode.PARAM_ERROR,
            401: BusinessCode.UNAUTHORIZED,
            403: BusinessCode.FORBIDDEN,
            404: BusinessCode.NOT_FOUND,
            429: BusinessCode.TOO_MANY_REQUESTS,
            500: BusinessCode.SYSTEM_ERROR,
            503: BusinessCode.SERVICE_UNAVAILABLE
        }
        code = code_mapping.get(exc.status_code, BusinessCode.SYSTEM_ERROR)

        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=request_id,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        request_id = _request_id(request)

        details = None
        if app.debug:
            details = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )

        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )

        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )
