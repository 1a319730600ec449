"""Context management for structured logging.

Values bound here are added to every log event emitted in the current
context. ``patch_context`` scopes them to one edit request, so concurrent
requests on different threads or tasks never see each other's fields.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

_log_context: ContextVar[dict[str, Any]] = ContextVar("patchwise_log_context", default={})


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to the current logging context.

    Example:
        >>> bind_context(request_id="req-123")
        >>> # All subsequent logs will include request_id
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the current logging context."""
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


def clear_context() -> None:
    """Clear all bound context values."""
    _log_context.set({})


def get_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


@contextmanager
def patch_context(**kwargs: Any) -> Iterator[dict[str, Any]]:
    """Bind fields for the duration of a ``with`` block.

    The previous context is restored on exit, including after an exception.

    Example:
        >>> with patch_context(path="src/app.py", op="update"):
        ...     logger.info("Patch applied")
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    token = _log_context.set(current)
    try:
        yield current.copy()
    finally:
        _log_context.reset(token)
