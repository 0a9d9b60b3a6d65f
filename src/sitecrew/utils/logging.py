"""Logging configuration for SiteCrew.

Provides structured logging with:
- JSON and console formatters
- Request, company and user correlation via context variables
- Redaction of credentials and invitation tokens
- Audit logging for access decisions
"""

from __future__ import annotations

import logging
import re
import sys
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import structlog

# Context variables for request tracking
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
company_id_var: ContextVar[str | None] = ContextVar("company_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)

SENSITIVE_KEYS = {
    "password", "secret", "token", "api_key", "apikey",
    "authorization", "credential", "private_key", "bearer",
}

REDACTED = "[REDACTED]"

# token=<value> inside URLs or free-form messages
_TOKEN_QUERY_RE = re.compile(r"(token=)[^&\s\"']+", re.IGNORECASE)
_BEARER_RE = re.compile(r"(bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)


def add_context_info(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add context information to log events."""
    if request_id := request_id_var.get():
        event_dict.setdefault("request_id", request_id)
    if company_id := company_id_var.get():
        event_dict.setdefault("company_id", company_id)
    if user_id := user_id_var.get():
        event_dict.setdefault("user_id", user_id)

    return event_dict


def redact_text(value: str) -> str:
    """Mask token query parameters and bearer credentials in a string."""
    value = _TOKEN_QUERY_RE.sub(rf"\1{REDACTED}", value)
    return _BEARER_RE.sub(rf"\1{REDACTED}", value)


def sanitize_event(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Sanitize sensitive data from logs."""

    def sanitize_value(value: Any) -> Any:
        if isinstance(value, dict):
            return sanitize_dict(value)
        if isinstance(value, list):
            return [sanitize_value(item) for item in value]
        if isinstance(value, str):
            return redact_text(value)
        return value

    def sanitize_dict(d: dict) -> dict:
        result = {}
        for key, value in d.items():
            key_lower = str(key).lower()
            if any(s in key_lower for s in SENSITIVE_KEYS):
                result[key] = REDACTED
            else:
                result[key] = sanitize_value(value)
        return result

    return sanitize_dict(event_dict)


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    log_file: str | None = None,
    service_name: str = "sitecrew",
    environment: str = "development",
    sanitize_logs: bool = True,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format (json or console)
        log_file: Optional file path for log output
        service_name: Service name for log identification
        environment: Environment name (development, staging, production)
        sanitize_logs: Whether to redact credentials and tokens
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_context_info,
    ]

    if sanitize_logs:
        shared_processors.append(sanitize_event)

    shared_processors.append(structlog.processors.format_exc_info)

    if format == "json":
        processors = shared_processors + [structlog.processors.JSONRenderer()]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        logging.getLogger().addHandler(file_handler)

    structlog.get_logger("sitecrew").info(
        "Logging initialized",
        service=service_name,
        environment=environment,
        level=level,
        format=format,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a logger instance with optional initial context.

    Args:
        name: Logger name (module name recommended)
        **initial_context: Initial context to bind to the logger

    Returns:
        Configured structlog BoundLogger
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def set_request_context(
    request_id: str | None = None,
    company_id: str | None = None,
    user_id: str | None = None,
) -> None:
    """Set context variables for the current request."""
    if request_id is not None:
        request_id_var.set(request_id)
    if company_id is not None:
        company_id_var.set(company_id)
    if user_id is not None:
        user_id_var.set(user_id)


def clear_request_context() -> None:
    """Clear all request context variables."""
    request_id_var.set(None)
    company_id_var.set(None)
    user_id_var.set(None)


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())


class AuditLogger:
    """
    Audit logger for authorization decisions and invitation transitions.

    Denials carry the failing permission so operators can trace them; the
    end user only ever sees a generic message.
    """

    def __init__(self, service: str = "sitecrew"):
        self.logger = get_logger("audit", service=service, audit=True)

    def log_access_event(
        self,
        permission: str,
        user_id: str | None = None,
        company_id: str | None = None,
        project_id: str | None = None,
        granted: bool = True,
    ) -> None:
        """Log an access control decision."""
        log = self.logger.info if granted else self.logger.warning
        log(
            "access.granted" if granted else "access.denied",
            permission=permission,
            user_id=user_id,
            company_id=company_id,
            project_id=project_id,
            granted=granted,
            event_type="access_control",
        )

    def log_invitation_event(
        self,
        action: str,
        invitation_id: str,
        actor_id: str | None = None,
        company_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log an invitation state transition."""
        self.logger.info(
            f"invitation.{action}",
            invitation_id=invitation_id,
            actor_id=actor_id,
            company_id=company_id,
            event_type="invitation",
            **(details or {}),
        )


# Module-level audit logger instance
audit_logger = AuditLogger()


__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_context",
    "clear_request_context",
    "generate_request_id",
    "redact_text",
    "sanitize_event",
    "AuditLogger",
    "audit_logger",
    "request_id_var",
    "company_id_var",
    "user_id_var",
]
