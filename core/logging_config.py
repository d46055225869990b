"""
Structlog logging configuration
"""
import logging
import json
import structlog
from structlog.processors import TimeStamper, add_log_level, JSONRenderer
from structlog.dev import ConsoleRenderer
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter
from typing import Any, List, Optional

from core.config import settings

# Never rendered in clear text, whatever logs them
SENSITIVE_KEYS = frozenset({"api_key", "signature", "password", "token", "authorization", "cookie"})


def mask_sensitive(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def get_renderer(debug: bool) -> Any:
    """Console renderer in DEBUG, JSON otherwise."""
    if debug:
        return ConsoleRenderer(colors=True)

    # structlog passes default/sort_keys through to the serializer
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def configure_logging(debug: Optional[bool] = None) -> None:
    """Configure structlog and route stdlib logging through the same chain."""
    debug = settings.DEBUG if debug is None else debug
    timestamper = TimeStamper(fmt="iso", utc=True)

    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        structlog.stdlib.add_logger_name,
        timestamper,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        mask_sensitive,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(debug),
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    # httpx logs every request at INFO; ours already do
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
