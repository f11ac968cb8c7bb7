from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

_request_id_ctx: ContextVar[str | None] = ContextVar("fg_request_id", default=None)


def new_request_id() -> str:
    return uuid.uuid4().hex


def get_request_id() -> str:
    """Current request id; one is minted lazily for work outside a request."""
    rid = _request_id_ctx.get()
    if not rid:
        rid = new_request_id()
        _request_id_ctx.set(rid)
    return rid


def bind_request_id(rid: str | None) -> Token:
    """Bind `rid` (or a fresh id) for the current request and return the reset token."""
    return _request_id_ctx.set(rid or new_request_id())


def reset_request_id(token: Token) -> None:
    _request_id_ctx.reset(token)
