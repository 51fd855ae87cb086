# backend/motoserve/core/request_context.py
"""
Request correlation for logs and error documents.

The HTTP middleware binds the X-Request-ID of the current request into a
ContextVar. Log records pick it up through RequestIdFilter and problem
documents echo it, so one cancellation or cascade can be followed across
the service, repository and lock loggers. Work outside a request (startup,
background cascades driven from a shell) logs with NO_REQUEST_ID.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
import logging
from typing import Optional

NO_REQUEST_ID = "-"

_request_id_var: ContextVar[str] = ContextVar("motoserve_request_id", default="")


def set_request_id(request_id: Optional[str]) -> Token[str]:
    """Bind request_id for the current context; pass the token to reset_request_id()."""
    return _request_id_var.set(request_id or "")


def reset_request_id(token: Token[str]) -> None:
    _request_id_var.reset(token)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    value = _request_id_var.get()
    return value if value else default


class RequestIdFilter(logging.Filter):
    """Stamp record.request_id unless the caller passed one in extra."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id(NO_REQUEST_ID)
        return True


def attach_request_id_filter(logger: Optional[logging.Logger] = None) -> None:
    """Add RequestIdFilter to every handler of logger (root by default), once."""
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if any(isinstance(existing, RequestIdFilter) for existing in handler.filters):
            continue
        handler.addFilter(RequestIdFilter())
