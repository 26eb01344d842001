"""
Request context middleware.

Every request gets a trace id (reused from an upstream ``X-Trace-ID`` when
the gateway in front already assigned one) and, when present, the calling
account from ``X-Account-ID``. Both are kept in context variables so that
every log line written while handling the request carries them.
"""

import re
import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from fleetprov.core.logging import logger
from fleetprov.core.trace_context import account_id_context, trace_id_context

TRACE_HEADER = "X-Trace-ID"
ACCOUNT_HEADER = "X-Account-ID"

_VALID_TRACE_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def resolve_trace_id(incoming: str | None) -> str:
    """Reuse a well-formed upstream trace id, otherwise mint a new one."""
    if incoming and _VALID_TRACE_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class TraceIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that binds trace id and account id to the request context.

    Flow:
    1. Trace id taken from X-Trace-ID or generated
    2. Trace id and account id stored in contextvars
    3. All logs automatically include both
    4. Response includes X-Trace-ID header
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = resolve_trace_id(request.headers.get(TRACE_HEADER))
        account_id = (request.headers.get(ACCOUNT_HEADER) or "").strip() or None

        trace_token = trace_id_context.set(trace_id)
        account_token = account_id_context.set(account_id)
        started = time.perf_counter()

        logger.info(f"Request started: {request.method} {request.url.path}")

        try:
            response = await call_next(request)
            response.headers[TRACE_HEADER] = trace_id

            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"Request completed: {request.method} {request.url.path} - "
                f"Status: {response.status_code} ({elapsed_ms:.1f} ms)"
            )
            return response

        except Exception:
            logger.exception(f"Request failed: {request.method} {request.url.path}")
            raise

        finally:
            trace_id_context.reset(trace_token)
            account_id_context.reset(account_token)


__all__ = ["TraceIDMiddleware", "resolve_trace_id"]
