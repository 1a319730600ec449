"""structlog processors used by :func:`patchwise.logging.configure_logging`."""
from typing import Any

from .context import get_context

EventDict = dict[str, Any]


def inject_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Copy fields bound with ``bind_context``/``patch_context`` into the event.

    Keyword arguments given at the call site take precedence.
    """
    for key, value in get_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_logger_name(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    # Foreign stdlib records carry their name on ``_record``
    record = event_dict.get("_record")
    name = record.name if record is not None else getattr(logger, "name", None)
    if name:
        event_dict["logger"] = name
    return event_dict
