"""Explicit request filter chain.

Filters share Starlette's HTTP middleware signature::

    async def my_filter(request: Request, call_next) -> Response

Each filter either returns a response of its own (short-circuit) or awaits
``call_next(request)`` to delegate onward. ``FilterChain`` composes an ordered
list of filters into a single middleware so the whole pipeline is registered
once and runs in the order it is declared:

    chain = FilterChain([request_id_filter, security_headers_filter, rate_limit_filter])
    app.middleware("http")(chain)
"""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response

CallNext = Callable[[Request], Awaitable[Response]]
RequestFilter = Callable[[Request, CallNext], Awaitable[Response]]


def _bind(request_filter: RequestFilter, call_next: CallNext) -> CallNext:
    async def call(request: Request) -> Response:
        return await request_filter(request, call_next)

    return call


def compose_filters(filters: Iterable[RequestFilter], handler: CallNext) -> CallNext:
    """Wrap ``handler`` so that ``filters`` run first, in the given order.

    Args:
        filters: Filters, outermost first.
        handler: Final handler invoked when every filter delegates onward.

    Returns:
        A single callable running the whole chain.
    """

    call = handler
    for request_filter in reversed(list(filters)):
        call = _bind(request_filter, call)
    return call


class FilterChain:
    """Ordered, mutable list of request filters usable as HTTP middleware."""

    def __init__(self, filters: Iterable[RequestFilter] | None = None) -> None:
        self._filters: list[RequestFilter] = list(filters or [])

    def add(self, request_filter: RequestFilter) -> "FilterChain":
        self._filters.append(request_filter)
        return self

    @property
    def filters(self) -> tuple[RequestFilter, ...]:
        return tuple(self._filters)

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        return await compose_filters(self._filters, call_next)(request)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        names = ", ".join(getattr(f, "__name__", repr(f)) for f in self._filters)
        return f"FilterChain([{names}])"
