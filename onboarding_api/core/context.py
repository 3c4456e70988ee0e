"""Request context management using contextvars.

Every request gets a request id plus the identity of the caller once the
bearer token is decoded. The values are only used to enrich log events;
services receive the caller explicitly as a ``Principal`` argument.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
user_role_var: ContextVar[str | None] = ContextVar("user_role", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def set_user_role(role: str | None) -> None:
    """Set the user role for the current context."""
    user_role_var.set(role)


def set_trace_id(trace_id: str | None) -> None:
    """Set the trace ID taken from distributed tracing headers."""
    trace_id_var.set(trace_id)


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    values = {
        "request_id": request_id_var.get(),
        "user_id": user_id_var.get(),
        "user_role": user_role_var.get(),
        "trace_id": trace_id_var.get(),
    }
    return {key: value for key, value in values.items() if value}


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request so values never leak between requests.
    """
    request_id_var.set("")
    user_id_var.set(None)
    user_role_var.set(None)
    trace_id_var.set(None)

