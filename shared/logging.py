"""
Structured logging for the sign-in relying party.

Events are rendered as JSON. Each event carries the request id of the HTTP
request being served, the callback step when inside the callback pipeline,
and the verified subject once the identity token has been accepted.
Credential-bearing fields are masked before rendering.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
callback_step_var: ContextVar[Optional[str]] = ContextVar('callback_step', default=None)
subject_var: ContextVar[Optional[str]] = ContextVar('subject', default=None)

SENSITIVE_KEYS = frozenset({
    "access_token",
    "id_token",
    "refresh_token",
    "client_secret",
    "code",
    "state",
})


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structlog and the stdlib root handler for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_service_context,
            add_correlation_context,
            redact_sensitive_fields,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # httpx logs every outbound request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Derive ``service`` from a dotted logger name such as ``signin.jwks``."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key, var in (
        ("request_id", request_id_var),
        ("callback_step", callback_step_var),
        ("sub", subject_var),
    ):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask token, secret and code values passed as event fields."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for this context, generating one if absent."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_callback_step(step: Optional[str]) -> None:
    callback_step_var.set(step)


def set_subject(subject: Optional[str]) -> None:
    """Bind the verified end-user subject to subsequent log events."""
    subject_var.set(subject)


def clear_context():
    """Reset all correlation fields."""
    request_id_var.set(None)
    callback_step_var.set(None)
    subject_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
