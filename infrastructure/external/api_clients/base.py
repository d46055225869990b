"""
REST API client base class

Shared plumbing for every call to the course platform API:
- 30 second client-side timeout
- one retry with exponential backoff on timeouts, network errors, 429 and 5xx
- session cookie and optional bearer token on every request
- non-2xx responses raised as APIError carrying status code and body text
"""
import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Type, Union

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger

logger = get_logger(__name__)


class HTTPMethod(Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass
class APIResponse:
    """Decoded API response"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def json(self) -> Any:
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)

    def text(self) -> str:
        return self.raw_content.decode('utf-8', errors='replace')


class APIError(Exception):
    """
    Base class for API call failures.

    `status_code` and `text` are None when no response was received
    (timeout, connection failure). `message` is what the backend said,
    suitable for showing to the user.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        super().__init__(self.message)

    @property
    def text(self) -> Optional[str]:
        return self.response.text() if self.response is not None else None

    def __str__(self):
        if self.status_code is not None:
            return f"{self.status_code}: {self.text or self.message}"
        return self.message


class AuthenticationError(APIError):
    pass


class NotFoundError(APIError):
    pass


class RateLimitError(APIError):
    pass


class ServerError(APIError):
    pass


class APITimeoutError(APIError):
    """No response within the client timeout"""


class APIConnectionError(APIError):
    """The request never reached the server"""


class RetryableAPIError(APIError):
    """Transient status; retried, then re-raised as its mapped class"""

    def __init__(self, message: str, status_code: Optional[int], response: Optional[APIResponse],
                 retry_after: Optional[float] = None):
        super().__init__(message=message, status_code=status_code, response=response,
                         request_id=response.request_id if response else None)
        self.retry_after = retry_after


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

ERROR_CLASSES: Dict[int, Type[APIError]] = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    429: RateLimitError,
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: ServerError,
}


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "api_request_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc) if exc else None,
    )


class BaseAPIClient:
    """
    REST API client base class

    Subclasses add typed endpoint methods on top of `_request`.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 1,
        retry_delay: float = 1.0,
        retry_max_delay: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        cookies: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        debug: bool = False,
    ):
        """
        Args:
            base_url: API base URL
            timeout: per-request timeout in seconds
            max_retries: retries after the first attempt
            retry_delay: first backoff delay in seconds, doubled per retry
            retry_max_delay: backoff ceiling
            headers: default request headers
            auth_token: bearer token
            cookies: session cookies sent with every request
            transport: custom httpx transport (tests use httpx.MockTransport)
            sleep: awaitable used between retries
            debug: log request and response details
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_max_delay = retry_max_delay
        self.debug = debug
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._cookies = httpx.Cookies(cookies or {})

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.set_auth_token(auth_token)

        self._client: Optional[httpx.AsyncClient] = None

    def set_auth_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    def set_cookie(self, name: str, value: str) -> None:
        self._cookies.set(name, value)
        if self._client is not None:
            self._client.cookies.set(name, value)

    @property
    async def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                cookies=self._cookies,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_url(self, endpoint: str) -> str:
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _log_request(self, method: str, url: str, **kwargs):
        if self.debug:
            logger.debug(
                "api_request",
                method=method,
                url=url,
                params=kwargs.get("params"),
                json=kwargs.get("json"),
            )

    def _log_response(self, method: str, url: str, response: APIResponse):
        if self.debug:
            logger.debug(
                "api_response",
                method=method,
                url=url,
                status_code=response.status_code,
                elapsed_ms=round(response.elapsed_ms, 2),
                request_id=response.request_id,
            )

    def _handle_error_response(self, status_code: int, response: APIResponse):
        """Raise the APIError subclass for a non-2xx response"""
        error_class = ERROR_CLASSES.get(status_code, APIError)

        error_message = response.text() or f"API request failed with status {status_code}"
        if isinstance(response.data, dict):
            error_message = (
                response.data.get("message")
                or response.data.get("error")
                or response.data.get("detail")
                or error_message
            )

        raise error_class(
            message=str(error_message),
            status_code=status_code,
            response=response,
            request_id=response.request_id,
        )

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> APIResponse:
        """
        Send a request and decode the response.

        Raises:
            APIError: non-2xx status after retries
            APITimeoutError: no response within the timeout
            APIConnectionError: network failure
        """
        if isinstance(method, HTTPMethod):
            method = method.value

        url = self._build_url(endpoint)

        request_headers = {**self.default_headers}
        if headers:
            request_headers.update(headers)

        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(mode="json", by_alias=True, exclude_none=True)

        self._log_request(method, url, params=params, json=json_data)

        async def _send_once() -> APIResponse:
            start_time = datetime.now()
            client = await self.client
            response = await client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                headers=request_headers,
                **kwargs
            )

            elapsed = (datetime.now() - start_time).total_seconds() * 1000

            content_type = response.headers.get("content-type", "")
            response_data = None
            if "application/json" in content_type:
                try:
                    response_data = response.json()
                except json.JSONDecodeError:
                    response_data = None

            api_response = APIResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response_data,
                raw_content=response.content,
                elapsed_ms=elapsed,
                request_id=response.headers.get("x-request-id"),
            )

            self._log_response(method, url, api_response)

            if api_response.status_code in RETRY_STATUS_CODES:
                retry_after: Optional[float] = None
                if api_response.status_code == 429:
                    try:
                        retry_after = float(api_response.headers.get("retry-after") or 0) or None
                    except (TypeError, ValueError):
                        retry_after = None
                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                    retry_after=retry_after,
                )

            if api_response.is_error:
                self._handle_error_response(api_response.status_code, api_response)

            return api_response

        retrying = AsyncRetrying(
            reraise=True,
            sleep=self._sleep,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, max=self.retry_max_delay),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=_log_retry,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            logger.warning("api_request_timeout", method=method, url=url, timeout=self.timeout)
            raise APITimeoutError(f"Request timeout after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            logger.warning("api_request_network_error", method=method, url=url, error=str(exc))
            raise APIConnectionError(f"Network error: {exc}") from exc
        except RetryableAPIError as exc:
            self._handle_error_response(exc.status_code, exc.response)
        raise APIError("Request was not attempted")  # pragma: no cover

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)

