"""Core components for QA Recorder."""

from .config import Config
from .exceptions import (
    QARecorderError,
    ConflictError,
    GenerationError,
    ModelError,
    SurfaceInjectionError,
    StorageError,
    ValidationError,
)
from .logging_config import setup_logging, get_logger, bind_context

__all__ = [
    "Config",
    "QARecorderError",
    "ConflictError",
    "GenerationError",
    "ModelError",
    "SurfaceInjectionError",
    "StorageError",
    "ValidationError",
    "setup_logging",
    "get_logger",
    "bind_context",
]
