"""Correlation IDs tying an HTTP request (or a CLI run) to its sync log lines."""

import re
import uuid
from contextvars import ContextVar, Token

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Incoming ids are echoed into every log line; keep them short and printable
_MAX_INCOMING_LENGTH = 128
_INCOMING_PATTERN = re.compile(r"[A-Za-z0-9._:\-]+")

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def accept_correlation_id(raw: str | None) -> str:
    """Return the caller-supplied id if it is safe to log, else a fresh one."""
    if raw and len(raw) <= _MAX_INCOMING_LENGTH and _INCOMING_PATTERN.fullmatch(raw):
        return raw
    return generate_correlation_id()


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)


def ensure_correlation_id() -> str:
    """Return the current correlation ID, creating one when none is set.

    Used by entry points that run outside the HTTP middleware (scripts).
    """
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid
