"""Immutable per-request context shared between pipeline stages.

Each stage derives a new ``RequestContext`` with ``dataclasses.replace`` and
binds it for the downstream stages only; nothing mutates the request object.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Iterator, Optional

from services.identity.proof import VerifiedIdentity
from services.payments.provider import PaymentSettlement


@dataclass(frozen=True)
class RequestContext:
    identity: Optional[VerifiedIdentity] = None
    price: int = 0
    payment: Optional[PaymentSettlement] = None

    def with_identity(self, identity: VerifiedIdentity) -> "RequestContext":
        return replace(self, identity=identity)

    def with_payment(self, price: int, payment: Optional[PaymentSettlement]) -> "RequestContext":
        return replace(self, price=price, payment=payment)


_EMPTY = RequestContext()
_current: ContextVar[RequestContext] = ContextVar("request_context", default=_EMPTY)


def current_request_context() -> RequestContext:
    return _current.get()


@contextmanager
def bind_request_context(context: RequestContext) -> Iterator[RequestContext]:
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)


__all__ = ["RequestContext", "bind_request_context", "current_request_context"]
