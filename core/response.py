"""
Unified response envelope
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import BusinessCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Error details"""
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601 ending in Z"""
        ts = timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """Envelope shared by every endpoint: `message` is safe to show to users"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS
) -> Response:
    return Response(
        code=code,
        message=message,
        data=data,
        error=None
    )


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None
) -> Response:
    """
    Build an error envelope

    Args:
        code: business code
        message: user-visible message
        error_type: machine-readable error type
        details: extra context
        field: offending input field
        request_id: request id for support lookups
    """
    return Response(
        code=code,
        message=message,
        data=None,
        error=ErrorDetail(
            type=error_type,
            details=details,
            field=field,
            request_id=request_id
        )
    )
