"""Logging setup: structlog events rendered through stdlib handlers."""
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Optional

import structlog

from .processors import add_logger_name, inject_context

EventFilter = Callable[[dict], Optional[dict]]

# Attribute set on every handler configure_logging() installs
_HANDLER_TAG = "_patchwise"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def numeric(self) -> int:
        return logging.getLevelName(self.value)


class LogFormat(str, Enum):
    PLAIN = "plain"
    JSON = "json"


@dataclass
class LogConfig:
    """How patchwise log events are rendered and where they go.

    Attributes:
        level: Threshold applied to the root logger and patchwise handlers.
        format: ``PLAIN`` console text or ``JSON`` lines.
        log_file: Also append events to this rotating file when set.
        max_bytes: Rotation size of ``log_file``.
        backup_count: Rotated files kept next to ``log_file``.
        module_levels: Level overrides by logger name, e.g.
            ``{"patchwise.patch.locator": LogLevel.DEBUG}``.
        filters: Called with each event dict; returning None drops the event.
    """
    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.PLAIN
    log_file: Optional[Path] = None
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 3
    module_levels: dict[str, LogLevel] = field(default_factory=dict)
    filters: list[EventFilter] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LogConfig":
        """Build a config from ``PATCHWISE_LOG_LEVEL``, ``PATCHWISE_LOG_FORMAT`` and ``PATCHWISE_LOG_FILE``.

        Raises:
            ValueError: Unknown level or format name.
        """
        env = os.environ if environ is None else environ
        level = (env.get("PATCHWISE_LOG_LEVEL") or "").strip()
        fmt = (env.get("PATCHWISE_LOG_FORMAT") or "").strip()
        log_file = (env.get("PATCHWISE_LOG_FILE") or "").strip()
        return cls(
            level=LogLevel(level.upper()) if level else LogLevel.INFO,
            format=LogFormat(fmt.lower()) if fmt else LogFormat.PLAIN,
            log_file=Path(log_file) if log_file else None,
        )


_configured: bool = False


def _filter_processor(event_filter: EventFilter) -> Callable:
    def run_filter(logger, method_name, event_dict):
        kept = event_filter(event_dict)
        if kept is None:
            raise structlog.DropEvent
        return kept
    return run_filter


def _shared_processors(config: LogConfig) -> list:
    """Processors run for structlog events and for foreign stdlib records alike."""
    chain: list = [
        structlog.contextvars.merge_contextvars,
        inject_context,
        add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    chain += [_filter_processor(f) for f in config.filters]
    return chain


def _build_handlers(config: LogConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.log_file,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    return handlers


def _install_handlers(config: LogConfig, formatter: logging.Formatter) -> None:
    root = logging.getLogger()
    root.setLevel(config.level.numeric)

    # Handlers added by the host application are left alone
    for old in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(old)
        old.close()

    for handler in _build_handlers(config):
        setattr(handler, _HANDLER_TAG, True)
        handler.setLevel(config.level.numeric)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name, level in config.module_levels.items():
        logging.getLogger(name).setLevel(level.numeric)


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """(Re)configure patchwise logging.

    Calling it again replaces the handlers installed by the previous call.

    Example:
        >>> configure_logging(LogConfig(
        ...     level=LogLevel.DEBUG,
        ...     format=LogFormat.JSON,
        ...     log_file=Path("./logs/patchwise.log"),
        ... ))
    """
    global _configured

    config = config or LogConfig()
    shared = _shared_processors(config)

    if config.format == LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    _install_handlers(config, formatter)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # module-level loggers must pick up a later reconfiguration
        cache_logger_on_first_use=False,
    )
    _configured = True


def is_configured() -> bool:
    return _configured


def ensure_configured() -> None:
    """Apply the default configuration unless configure_logging() already ran."""
    if not _configured:
        configure_logging()
