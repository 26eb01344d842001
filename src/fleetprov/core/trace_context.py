"""Per-request context variables read by the log filter."""

import contextvars

# Request trace id, echoed back as X-Trace-ID
trace_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "trace_id", default=None
)

# Calling account (X-Account-ID), when the request carries one
account_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "account_id", default=None
)
