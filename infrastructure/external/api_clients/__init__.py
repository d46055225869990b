"""
API client module

HTTP clients for the course platform REST API
"""
from .base import (
    BaseAPIClient,
    APIResponse,
    APIError,
    APITimeoutError,
    APIConnectionError,
    AuthenticationError,
    NotFoundError,
)
from .course_platform import CoursePlatformClient

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "APITimeoutError",
    "APIConnectionError",
    "AuthenticationError",
    "NotFoundError",
    "CoursePlatformClient",
]
