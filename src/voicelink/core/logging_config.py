"""
Structured logging for VOICELINK

Events are named "component.operation[.detail]", e.g.
"session_controller.session.timeout". configure_logging() installs:

- a processor exposing component/operation as separate keys for filtering
- a fingerprint on failure events so repeats group together
- colored console output in development, JSON lines with rotation otherwise
"""

import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from structlog.typing import EventDict, FilteringBoundLogger, WrappedLogger

from voicelink.core.config import config

FAILURE_LEVELS = ("warning", "error", "critical", "exception")


def get_log_level() -> int:
    name = os.getenv("VOICELINK_LOG_LEVEL", config.LOG_LEVEL).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_log_dir() -> Path:
    log_dir = Path(os.getenv("VOICELINK_LOG_DIR", str(config.PROJECT_ROOT / "logs")))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def add_event_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Split a dotted event name into component / operation / sub_operation"""
    event = event_dict.get("event")
    if not isinstance(event, str) or "." not in event:
        return event_dict

    component, _, rest = event.partition(".")
    operation, _, detail = rest.partition(".")
    event_dict.setdefault("component", component)
    event_dict.setdefault("operation", operation)
    if detail:
        event_dict.setdefault("sub_operation", detail)
    return event_dict


def add_error_enrichment(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Fingerprint failure events by component.operation[.error_type]"""
    if method_name not in FAILURE_LEVELS:
        return event_dict

    parts = [str(event_dict.get("component", "unknown")), str(event_dict.get("operation", "unknown"))]
    if "error_type" in event_dict:
        parts.append(str(event_dict["error_type"]))
    event_dict["error_fingerprint"] = ".".join(parts)
    return event_dict


def _renderer(development_mode: bool):
    if development_mode:
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def configure_logging(development_mode: Optional[bool] = None) -> None:
    """Route structlog through stdlib logging; safe to call more than once"""
    if development_mode is None:
        development_mode = os.getenv("VOICELINK_ENV", "development") == "development"

    if development_mode:
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.handlers.RotatingFileHandler(
            get_log_dir() / "voicelink.log",
            maxBytes=20 * 1024 * 1024,
            backupCount=5,
        )

    logging.basicConfig(format="%(message)s", level=get_log_level(), handlers=[handler], force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso" if not development_mode else "%H:%M:%S"),
            add_event_context,
            add_error_enrichment,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(development_mode),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.get_logger("voicelink.logging").info(
        "logging.configured",
        development_mode=development_mode,
        log_level=logging.getLevelName(get_log_level()),
    )


class PerformanceLogger:
    """
    Times a block and logs "<operation>.completed" or "<operation>.failed"

    Example:
        with PerformanceLogger(logger, "stt.transcribe", audio_seconds=1.2):
            ...
    """

    def __init__(self, logger: FilteringBoundLogger, operation: str, **context: Any):
        self.logger = logger
        self.operation = operation
        self.context: Dict[str, Any] = context
        self.duration: Optional[float] = None
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = round(time.perf_counter() - self._started, 3)
        if exc_type is None:
            self.logger.info(f"{self.operation}.completed", duration_seconds=self.duration, **self.context)
        else:
            self.logger.warning(f"{self.operation}.failed", duration_seconds=self.duration,
                                error_type=exc_type.__name__, **self.context)
        return False
