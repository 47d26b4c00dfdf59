"""Request correlation for API logs.

The HTTP middleware wraps each request in :func:`correlation_scope`, so
webhook ingestion, feed page and stats log entries share one id. That id is
echoed back in the ``X-Request-ID`` response header.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

from channel_feed.config.logging_config import bind_context, unbind_context

CORRELATION_ID_KEY = "correlation_id"
REQUEST_ID_HEADER = "X-Request-ID"


@contextmanager
def correlation_scope(request_id: str | None = None) -> Iterator[str]:
    """Bind the caller's request id, or a fresh UUID4 when it sent none."""

    correlation_id = (request_id or "").strip() or str(uuid4())
    bind_context(**{CORRELATION_ID_KEY: correlation_id})
    try:
        yield correlation_id
    finally:
        unbind_context(CORRELATION_ID_KEY)


__all__ = ["CORRELATION_ID_KEY", "REQUEST_ID_HEADER", "correlation_scope"]
