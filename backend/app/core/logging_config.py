"""
Centralized Logging Configuration

Every record carries the request it belongs to, the actor who issued it and
the academic session it touches. Production writes JSON lines, everything
else a compact text format.
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Optional
from contextvars import ContextVar

from app.core.config import settings


# Context variables for request tracing
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
actor_id_var: ContextVar[str] = ContextVar('actor_id', default='')
session_id_var: ContextVar[str] = ContextVar('session_id', default='')

CONTEXT_VARS: Dict[str, ContextVar] = {
    'request_id': request_id_var,
    'actor_id': actor_id_var,
    'session_id': session_id_var,
}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def set_actor_id(actor_id: str) -> None:
    actor_id_var.set(actor_id)


def set_session_id(session_id: str) -> None:
    session_id_var.set(session_id)


def clear_context() -> None:
    """Reset all tracing fields at the end of a request"""
    for var in CONTEXT_VARS.values():
        var.set('')


def current_context() -> Dict[str, str]:
    """Tracing fields that are set for the current task"""
    return {name: var.get() for name, var in CONTEXT_VARS.items() if var.get()}


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


_STANDARD_RECORD_KEYS = set(logging.LogRecord('', 0, '', 0, '', None, None).__dict__) | {
    'message', 'asctime', *CONTEXT_VARS
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, extras and tracing fields flattened in"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(current_context())

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        entry.update(
            (key, value) for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_KEYS and not key.startswith('_')
        )
        return json.dumps(entry, default=str)


class ContextualFormatter(logging.Formatter):
    """Text formatter that can reference %(request_id)s, %(actor_id)s and %(session_id)s"""

    def format(self, record: logging.LogRecord) -> str:
        for name, var in CONTEXT_VARS.items():
            setattr(record, name, var.get() or '-')
        return super().format(record)


class LifecycleLogger(logging.Logger):
    """Logger with structured helpers for lifecycle events"""

    def log_transition(self, action: str, session_id: str, actor_id: Optional[str] = None,
                       from_status: Optional[str] = None, to_status: Optional[str] = None,
                       from_semester: Optional[int] = None, to_semester: Optional[int] = None,
                       **kwargs) -> None:
        """Log a committed lifecycle transition"""
        status_part = f" {from_status} -> {to_status}" if from_status != to_status else ""
        semester_part = (
            f" (semester {from_semester} -> {to_semester})"
            if from_semester is not None and from_semester != to_semester else ""
        )
        self.info(
            f"Session {session_id}: {action}{status_part}{semester_part}",
            extra={
                "event_type": "transition",
                "transition_action": action,
                "academic_session_id": session_id,
                "transition_actor": actor_id,
                "from_status": from_status,
                "to_status": to_status,
                "from_semester": from_semester,
                "to_semester": to_semester,
                **kwargs
            }
        )

    def log_rejection(self, action: str, session_id: Optional[str], code: str,
                      message: str, **kwargs) -> None:
        """Log a command the lifecycle rules refused"""
        self.warning(
            f"Rejected {action} on session {session_id or '-'}: {code} - {message}",
            extra={
                "event_type": "rejection",
                "transition_action": action,
                "academic_session_id": session_id,
                "error_code": code,
                **kwargs
            }
        )


def _build_handlers(json_logging: bool) -> List[logging.Handler]:
    if json_logging:
        console_formatter = file_formatter = JSONFormatter()
    else:
        console_formatter = ContextualFormatter("%(levelname)-8s | [%(request_id)s] %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | "
            "[%(request_id)s] [%(actor_id)s] [%(session_id)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)
    handlers: List[logging.Handler] = [console_handler]

    if settings.LOG_FILE:
        log_file = Path(settings.LOG_FILE)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=10 if json_logging else 5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    return handlers


def setup_logging() -> LifecycleLogger:
    """Setup logging configuration based on environment"""
    logging.setLoggerClass(LifecycleLogger)

    logger = logging.getLogger("session_lifecycle")
    logger.__class__ = LifecycleLogger  # Ensure it's our custom class
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.handlers.clear()

    json_logging = settings.ENVIRONMENT == "production"
    for handler in _build_handlers(json_logging):
        logger.addHandler(handler)

    # Suppress noisy loggers
    for name in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.ENVIRONMENT,
            "log_level": settings.LOG_LEVEL,
            "json_logging": json_logging
        }
    )

    return logger


# Create logger instance
logger: LifecycleLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'set_request_id',
    'set_actor_id',
    'set_session_id',
    'clear_context',
    'current_context',
    'generate_request_id',
    'LifecycleLogger',
    'JSONFormatter',
    'ContextualFormatter',
]
