"""
Logging for QA Recorder.

Every record of one CLI run carries the same run id. Records emitted while a
session is being recorded or synthesized can carry session context
(session id, test format, model) through ``bind_context``; both output
formats surface that context next to the message.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Union

from .config import Config

CONTEXT_FIELDS = ("session_id", "test_format", "model_name", "provider", "duration", "status")

# Client libraries that log every HTTP request at INFO
CHATTY_LOGGERS = ("httpx", "httpcore", "openai", "LiteLLM")

MAIN_LOG_MAX_BYTES = 10 * 1024 * 1024
DEBUG_LOG_MAX_BYTES = 50 * 1024 * 1024


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Session context attached to a record, in CONTEXT_FIELDS order."""
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for CI and log shipping."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "run_id": self.run_id,
            "message": record.getMessage(),
        }
        entry.update(record_context(record))

        metadata = getattr(record, "metadata", None)
        if metadata:
            entry["metadata"] = metadata
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Single-line human-readable output for terminals and log files."""

    def __init__(self, run_id: str):
        super().__init__()
        self.short_run_id = run_id[:8]

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        parts = [f"[{timestamp}] {record.levelname:8} {record.name:20}"]

        session_id = getattr(record, "session_id", None)
        if session_id:
            parts.append(f"[{session_id}]")
        parts.append(f"| {record.getMessage()} (run: {self.short_run_id})")

        metadata = getattr(record, "metadata", None)
        if metadata:
            parts.append("| " + " | ".join(f"{k}={v}" for k, v in metadata.items()))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter that stamps bound context onto every record.

    Keys passed in an explicit ``extra`` win over bound ones, so a call can
    still override e.g. ``status`` for a single line.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context) -> "ContextLogger":
        """New adapter over the same logger with additional context."""
        return ContextLogger(self.logger, {**self.extra, **context})


def bind_context(
    logger: Union[logging.Logger, logging.LoggerAdapter], **context
) -> ContextLogger:
    """Wrap ``logger`` so every record carries ``context``."""
    if isinstance(logger, ContextLogger):
        return logger.bind(**context)
    return ContextLogger(logger, context)


def get_logger(name: str, **context) -> Union[logging.Logger, ContextLogger]:
    """Logger for ``name``, bound to ``context`` when any is given."""
    logger = logging.getLogger(name)
    return bind_context(logger, **context) if context else logger


def _build_handlers(config: Config, run_id: str) -> List[logging.Handler]:
    level = getattr(logging, config.log_level)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    handlers: List[logging.Handler] = [console]

    # CI collects stdout, so no files there
    if config.is_ci_mode:
        return handlers

    main_file = logging.handlers.RotatingFileHandler(
        config.get_log_file_path(),
        maxBytes=MAIN_LOG_MAX_BYTES,
        backupCount=5,
        encoding="utf-8",
    )
    main_file.setLevel(level)
    handlers.append(main_file)

    if config.debug_enabled:
        debug_file = logging.handlers.RotatingFileHandler(
            config.get_debug_log_dir() / f"debug-{run_id[:8]}.log",
            maxBytes=DEBUG_LOG_MAX_BYTES,
            backupCount=3,
            encoding="utf-8",
        )
        debug_file.setLevel(logging.DEBUG)
        handlers.append(debug_file)

    return handlers


def setup_logging(config: Config, run_id: str) -> logging.Logger:
    """
    Configure the root logger for one CLI run.

    Console output always; a rotating main log file and, at DEBUG, a
    per-run debug file unless running in CI. HTTP client libraries are
    held at WARNING unless DEBUG is enabled.

    Returns:
        The configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, config.log_level))

    formatter: logging.Formatter
    if config.log_format == "json":
        formatter = StructuredFormatter(run_id)
    else:
        formatter = TextFormatter(run_id)

    for handler in _build_handlers(config, run_id):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    third_party_level = logging.DEBUG if config.debug_enabled else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    logging.getLogger("qa_recorder.logging").info(
        "Logging configured",
        extra={
            "metadata": {
                "run_id": run_id,
                "log_level": config.log_level,
                "log_format": config.log_format,
                "ci_mode": config.is_ci_mode,
                "debug_enabled": config.debug_enabled,
            }
        },
    )
    return root


def log_performance(
    logger: Union[logging.Logger, logging.LoggerAdapter],
    operation: str,
    duration: float,
    **metadata,
) -> None:
    """Record how long ``operation`` took, in seconds."""
    logger.info(
        f"Performance: {operation} completed in {duration:.2f}s",
        extra={"metadata": {"operation": operation, "duration": duration, **metadata}},
    )


def log_model_call(
    logger: Union[logging.Logger, logging.LoggerAdapter],
    model: str,
    provider: str,
    duration: float,
    success: bool,
    **metadata,
) -> None:
    """Record one completion call; failures at WARNING, successes at DEBUG."""
    details = {
        "model_name": model,
        "provider": provider,
        "duration": duration,
        "success": success,
        **metadata,
    }
    logger.log(
        logging.DEBUG if success else logging.WARNING,
        f"Model call: {provider}/{model} {'success' if success else 'failed'} in {duration:.2f}s",
        extra={"metadata": details},
    )
