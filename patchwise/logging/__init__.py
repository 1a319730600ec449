"""Structured logging for patchwise.

Patch events are structlog events rendered by stdlib handlers, either as
console text or as JSON lines, optionally copied to a rotating file. The
engine binds ``path`` and ``op`` for each request with ``patch_context``.

    >>> from patchwise.logging import LogConfig, configure_logging
    >>> configure_logging(LogConfig.from_env())
"""
import structlog

from .config import LogConfig, LogFormat, LogLevel, configure_logging, ensure_configured, is_configured
from .context import bind_context, clear_context, get_context, patch_context, unbind_context


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, applying the default configuration on first use."""
    ensure_configured()
    return structlog.get_logger(name)


__all__ = [
    "LogConfig",
    "LogFormat",
    "LogLevel",
    "configure_logging",
    "ensure_configured",
    "is_configured",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "get_context",
    "patch_context",
]
