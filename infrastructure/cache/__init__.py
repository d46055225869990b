"""Cache layer public interface"""
from .redis_cache import (
    RedisCache,
    init_redis_cache,
    shutdown_redis_cache,
    get_redis_cache,
)
from .request_cache import (
    RequestCache,
    init_request_cache,
    get_request_cache,
    shutdown_request_cache,
)

__all__ = [
    "RedisCache",
    "init_redis_cache",
    "shutdown_redis_cache",
    "get_redis_cache",
    "RequestCache",
    "init_request_cache",
    "get_request_cache",
    "shutdown_request_cache",
]
