"""
Request ID middleware
Generates or forwards a trace id and shares it with the logging system through contextvars
"""
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID tracing middleware

    1. Reads the request id header or generates a new one
    2. Stores it in contextvars so every log line carries it
    3. Echoes it in the response headers
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = self._get_client_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    def _get_client_ip(self, request: Request) -> str:
        # First hop of X-Forwarded-For is the original client
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        return request.client.host if request.client else "unknown"
