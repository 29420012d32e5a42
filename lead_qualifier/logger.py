"""
Structured logging for Lead Qualifier.

JSON logs for production, readable output for dev.
Includes conversation_id for tracing.

Usage:
    from lead_qualifier.logger import logger

    logger.set_conversation("conv_123")
    logger.info("User message received", intent="direct_answer")
    logger.event("state_transition", from_state="budget", to_state="timeline")
"""

import json
import logging
import os
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from lead_qualifier.settings import settings


# Context-local storage so parallel sessions never share a conversation_id
_conversation_id_var: ContextVar[Optional[str]] = ContextVar('conversation_id', default=None)
_extra_context_var: ContextVar[Optional[Dict[str, Any]]] = ContextVar('extra_context', default=None)


class StructuredLogger:
    """
    Structured logger with JSON output and conversation tracing.

    - JSON format for production (LOG_FORMAT=json)
    - Readable format for development (default)
    - conversation_id attached to every record
    - event() and metric() for analytics
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

        if not self.logger.handlers:
            self._setup_logger()

    def _setup_logger(self) -> None:
        """Configure the logger from settings and environment"""
        level_name = settings.get_nested("logging.level", "INFO")
        level = getattr(logging, str(level_name).upper(), logging.INFO)
        self.logger.setLevel(level)

        handler = logging.StreamHandler()
        handler.setLevel(level)

        if os.environ.get("LOG_FORMAT", "readable") == "json":
            formatter = logging.Formatter("%(message)s")
        else:
            formatter = logging.Formatter(
                "[%(asctime)s] %(levelname)s - %(message)s",
                datefmt="%H:%M:%S"
            )

        handler.setFormatter(formatter)
        self.logger.addHandler(handler)
        self.logger.propagate = False

    @property
    def conversation_id(self) -> Optional[str]:
        """Context-local conversation_id"""
        return _conversation_id_var.get()

    def set_conversation(self, conv_id: str) -> None:
        _conversation_id_var.set(conv_id)

    def clear_conversation(self) -> None:
        _conversation_id_var.set(None)

    @property
    def _extra_context(self) -> Dict[str, Any]:
        ctx = _extra_context_var.get()
        if ctx is None:
            ctx = {}
            _extra_context_var.set(ctx)
        return ctx

    def set_context(self, **kwargs: Any) -> None:
        """Set extra context attached to every record (context-local)"""
        ctx = dict(self._extra_context)
        ctx.update(kwargs)
        _extra_context_var.set(ctx)

    def clear_context(self) -> None:
        _extra_context_var.set({})

    def _format_structured(self, level: str, message: str, **kwargs: Any) -> Dict[str, Any]:
        """Format a structured log line"""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.name,
            "message": message,
        }

        if self.conversation_id:
            log_entry["conversation_id"] = self.conversation_id

        if self._extra_context:
            log_entry.update(self._extra_context)

        if kwargs:
            log_entry.update(kwargs)

        return log_entry

    def _should_use_json(self) -> bool:
        return os.environ.get("LOG_FORMAT", "readable") == "json"

    def _format_readable(self, message: str, **kwargs: Any) -> str:
        if kwargs:
            extras = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            message = f"{message} [{extras}]"
        if self.conversation_id:
            message = f"[{self.conversation_id}] {message}"
        return message

    def _log(self, level: str, message: str, log_method: Callable[[str], None], **kwargs: Any) -> None:
        if self._should_use_json():
            structured = self._format_structured(level, message, **kwargs)
            log_method(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            log_method(self._format_readable(message, **kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, self.logger.debug, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, self.logger.info, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, self.logger.warning, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, self.logger.error, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback"""
        if self._should_use_json():
            kwargs["traceback"] = traceback.format_exc()
            structured = self._format_structured("ERROR", message, **kwargs)
            self.logger.error(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            self.logger.exception(self._format_readable(message, **kwargs))

    def metric(self, name: str, value: Any, **kwargs: Any) -> None:
        """
        Structured metric for analytics.

        Example:
            logger.metric("progress", 60, state="timeline")
        """
        self._log("METRIC", name, self.logger.info, value=value, **kwargs)

    def event(self, event_type: str, level: int = logging.INFO, **kwargs: Any) -> None:
        """
        Log business event for analytics.

        Example:
            logger.event("state_transition", from_state="budget", to_state="timeline")
            logger.event("objection_handled", type="privacy_refusal", attempts=2)
        """
        self._log("EVENT", event_type, lambda msg: self.logger.log(level, msg), **kwargs)


# Singleton logger instance
logger = StructuredLogger("lead_qualifier")


def create_test_logger(name: str = "test") -> StructuredLogger:
    """Create an isolated logger for tests"""
    return StructuredLogger(f"lead_qualifier.{name}")
