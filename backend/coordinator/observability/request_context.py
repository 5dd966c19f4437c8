"""Request-scoped context utilities."""

from __future__ import annotations

from contextvars import ContextVar, Token
from uuid import uuid4

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return _request_id.get()


def set_request_id(request_id: str | None) -> Token:
    """Bind request_id to the current context; pass the token to reset_request_id."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def ensure_request_id(request_id: str | None = None) -> str:
    """Reuse a caller-supplied id or mint a fresh one."""
    return request_id or uuid4().hex
