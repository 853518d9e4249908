"""
Base exception classes for QA Recorder.

Provides a hierarchy of exceptions for the errors that can occur while
recording a session and synthesizing test artifacts from it.
"""

from typing import Optional, Dict, Any


class QARecorderError(Exception):
    """Base exception class for all QA Recorder errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ConflictError(QARecorderError):
    """Raised when a recording is started while another session is active."""

    def __init__(
        self,
        message: str,
        active_session_id: Optional[str] = None,
        active_status: Optional[str] = None,
    ):
        super().__init__(message, "SESSION_CONFLICT")
        self.active_session_id = active_session_id
        self.active_status = active_status
        self.context.update(
            {
                "active_session_id": active_session_id,
                "active_status": active_status,
            }
        )


class ModelError(QARecorderError):
    """Raised when a completion provider call fails."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, "MODEL_ERROR")
        self.model_name = model_name
        self.provider = provider
        self.context.update(
            {
                "model_name": model_name,
                "provider": provider,
            }
        )


class GenerationError(QARecorderError):
    """Raised when test case synthesis cannot obtain generated text."""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        test_format: Optional[str] = None,
    ):
        super().__init__(message, "GENERATION_FAILED")
        self.session_id = session_id
        self.test_format = test_format
        self.context.update(
            {
                "session_id": session_id,
                "test_format": test_format,
            }
        )


class SurfaceInjectionError(QARecorderError):
    """Raised when the capture surface cannot be opened or instrumented."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message, "SURFACE_INJECTION_FAILED")
        self.url = url
        self.stage = stage
        self.context.update(
            {
                "url": url,
                "stage": stage,
            }
        )


class StorageError(QARecorderError):
    """Raised when the entity store cannot read or write an entity."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        entity_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, "STORAGE_FAILED")
        self.kind = kind
        self.entity_id = entity_id
        self.operation = operation
        self.context.update(
            {
                "kind": kind,
                "entity_id": entity_id,
                "operation": operation,
            }
        )


class ValidationError(QARecorderError):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.validation_type = validation_type
        self.violations = violations or []
        self.context.update(
            {
                "validation_type": validation_type,
                "violations": violations,
            }
        )
