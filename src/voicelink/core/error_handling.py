"""
Unified Error Handling

Every failure the voice subsystem swallows (instead of raising to the
caller) is recorded here exactly once: classified by how it can be
recovered from, logged with its session and operation, and counted for
the status endpoints.

Classification is by recovery strategy:
- NETWORK / DEPENDENCY: the next utterance may simply work
- CONFIGURATION / HARDWARE / VALIDATION: the user has to act
- LOGIC / UNKNOWN: a bug
"""

import inspect
import time
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from os.path import basename
from typing import Any, Deque, Dict, Optional

import structlog

from voicelink.core.exceptions import (
    ConfigurationError,
    DispatchError,
    EngineCreationError,
    TranscriptionError,
    VoiceLinkError,
)

logger = structlog.get_logger()


class ErrorSeverity(Enum):
    """Impact on the user; values double as structlog method names"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"       # utterance lost, client keeps working
    ERROR = "error"           # feature unavailable until the user acts
    CRITICAL = "critical"     # invariant broken


class ErrorCategory(Enum):
    """How the failure can be recovered from"""
    NETWORK = "network"
    DEPENDENCY = "dependency"
    CONFIGURATION = "config"
    HARDWARE = "hardware"
    VALIDATION = "validation"
    LOGIC = "logic"
    UNKNOWN = "unknown"


RETRIABLE = frozenset({ErrorCategory.NETWORK, ErrorCategory.DEPENDENCY})

# First match wins, so subclasses must precede their bases
CLASSIFICATION_RULES: list[tuple[type, ErrorCategory, ErrorSeverity]] = [
    (EngineCreationError, ErrorCategory.HARDWARE, ErrorSeverity.ERROR),
    (TranscriptionError, ErrorCategory.DEPENDENCY, ErrorSeverity.WARNING),
    (DispatchError, ErrorCategory.NETWORK, ErrorSeverity.WARNING),
    (ConfigurationError, ErrorCategory.CONFIGURATION, ErrorSeverity.WARNING),
    (ConnectionError, ErrorCategory.NETWORK, ErrorSeverity.WARNING),
    (TimeoutError, ErrorCategory.NETWORK, ErrorSeverity.WARNING),
    (PermissionError, ErrorCategory.HARDWARE, ErrorSeverity.ERROR),
    (OSError, ErrorCategory.HARDWARE, ErrorSeverity.ERROR),
    (ValueError, ErrorCategory.VALIDATION, ErrorSeverity.WARNING),
    (AssertionError, ErrorCategory.LOGIC, ErrorSeverity.CRITICAL),
    (RuntimeError, ErrorCategory.LOGIC, ErrorSeverity.ERROR),
]


@dataclass
class ErrorContext:
    """One recorded failure"""
    category: ErrorCategory
    severity: ErrorSeverity
    error_type: str
    message: str
    operation: str = ""
    component: str = ""
    session_id: Optional[str] = None
    user_title: Optional[str] = None
    cause: Optional[str] = None
    origin: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = field(default=None, repr=False)
    error_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: float = field(default_factory=time.time)

    @property
    def is_retriable(self) -> bool:
        return self.category in RETRIABLE

    def to_dict(self) -> Dict[str, Any]:
        """Flat fields for structured logs and status payloads"""
        return {
            "error_id": self.error_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "error_type": self.error_type,
            "message": self.message,
            "operation": self.operation,
            "component": self.component,
            "session_id": self.session_id,
            "user_title": self.user_title,
            "cause": self.cause,
            "origin": self.origin,
            "retriable": self.is_retriable,
            **self.metadata,
        }


class ErrorHandler:
    """Classifies, logs and counts handled failures"""

    def __init__(self, max_recent_errors: int = 100):
        self.recent_errors: Deque[ErrorContext] = deque(maxlen=max_recent_errors)
        self.counts: Counter = Counter()

    @staticmethod
    def classify_error(exception: BaseException) -> tuple[ErrorCategory, ErrorSeverity]:
        for error_type, category, severity in CLASSIFICATION_RULES:
            if isinstance(exception, error_type):
                return category, severity
        return ErrorCategory.UNKNOWN, ErrorSeverity.ERROR

    def create_context(self,
                       exception: BaseException,
                       operation: str = "",
                       component: str = "",
                       session_id: Optional[str] = None,
                       **metadata) -> ErrorContext:
        """Build the context for an exception; the caller's frame becomes its origin"""
        category, severity = self.classify_error(exception)

        caller = inspect.stack(context=0)[1]
        cause = exception.__cause__

        return ErrorContext(
            category=category,
            severity=severity,
            error_type=type(exception).__name__,
            message=str(exception),
            operation=operation,
            component=component,
            session_id=session_id,
            user_title=exception.title if isinstance(exception, VoiceLinkError) else None,
            cause=type(cause).__name__ if cause is not None else None,
            origin=f"{caller.function}@{basename(caller.filename)}:{caller.lineno}",
            metadata=metadata,
            exception=exception,
        )

    def handle_error(self, context: ErrorContext) -> ErrorContext:
        """Log once and update counters"""
        self.counts[f"{context.category.value}.{context.severity.value}"] += 1
        self.recent_errors.append(context)

        log = getattr(logger, context.severity.value)
        log("error.handled", **context.to_dict())
        return context

    def get_stats(self, window_seconds: float = 60.0) -> Dict[str, Any]:
        cutoff = time.time() - window_seconds
        last = self.recent_errors[-1] if self.recent_errors else None
        return {
            "total_errors": sum(self.counts.values()),
            "error_breakdown": dict(self.counts),
            "recent_error_count": len(self.recent_errors),
            "errors_in_window": sum(1 for e in self.recent_errors if e.timestamp >= cutoff),
            "last_error": last.to_dict() if last else None,
        }


# Global error handler instance
_error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    return _error_handler


def log_and_return_error(exception: BaseException,
                         default_return: Any = None,
                         operation: str = "",
                         component: str = "",
                         handler: Optional[ErrorHandler] = None,
                         **metadata) -> Any:
    """Record a failure that the caller deliberately absorbs"""
    handler = handler or _error_handler
    handler.handle_error(
        handler.create_context(exception, operation=operation, component=component, **metadata)
    )
    return default_return
