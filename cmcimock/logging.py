from __future__ import annotations

import logging
import os
import re
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Per-request correlation id, echoed back in X-Request-ID
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID for request tracing."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set or generate a correlation ID for the current request context."""
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    cid = get_correlation_id()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


# Bearer tokens and credentials must never reach the log stream in full.
# Cache tokens are short, non-secret handles and stay readable.
_SECRET_KEYS = ("password", "secret", "authorization", "credential", "ltpa", "bearer")


def _redact_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    for key in list(event_dict.keys()):
        lower_key = key.lower()
        if any(marker in lower_key for marker in _SECRET_KEYS):
            value = event_dict[key]
            if isinstance(value, str) and len(value) > 4:
                event_dict[key] = value[:2] + "***" + value[-2:]
    return event_dict


def _configure_structlog(
    log_level: str = "INFO",
    json_output: bool = True,
    development_mode: bool = False,
) -> None:
    """Configure structlog processors.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON; if False, output human-readable
        development_mode: If True, use pretty console output
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_id,
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if development_mode or not json_output:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Initialize logging on module import
_log_level = os.getenv("LOG_LEVEL", "INFO").upper()
_json_output = os.getenv("LOG_JSON", "true").lower() in {"1", "true", "yes", "on"}
_dev_mode = os.getenv("LOG_DEV_MODE", "false").lower() in {"1", "true", "yes", "on"}

_configure_structlog(
    log_level=_log_level,
    json_output=_json_output,
    development_mode=_dev_mode,
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured logger with correlation ID support."""
    return structlog.get_logger(name)


_SENSITIVE_ERROR_PATTERNS = [
    # Path/file related
    r'(?i)/(?:home|var|etc|usr|opt|tmp|root|srv)/[^\s]+',
    r'(?i)[a-z]:\\[^\s]+',
    # Credential patterns
    r'(?i)(password|secret|token|key|credential)\s*[:=]\s*[^\s]+',
    # Stack traces
    r'(?i)traceback\s*\(most recent call last\)',
    r'(?i)file\s+"[^"]+",\s+line\s+\d+',
]

_SENSITIVE_PATTERNS_COMPILED = [re.compile(p) for p in _SENSITIVE_ERROR_PATTERNS]


def sanitize_error_message(error: str, *, replacement: str = "[redacted]") -> str:
    """Scrub an exception message before it is echoed in an INVALIDDATA summary.

    Removes file paths, credential assignments and traceback fragments, and
    caps the length so the XML attribute stays readable.
    """
    if not error or not isinstance(error, str):
        return "Internal server error"

    result = error
    for pattern in _SENSITIVE_PATTERNS_COMPILED:
        result = pattern.sub(replacement, result)

    if len(result) > 500:
        result = result[:497] + "..."

    return result
