"""
Pydantic models for recording sessions and captured records.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..synthesis.models import TestCase


class SessionStatus(str, Enum):
    """Lifecycle status of a recording session."""

    RECORDING = "recording"
    STOPPED = "stopped"
    PROCESSING = "processing"
    COMPLETED = "completed"


class InteractionType(str, Enum):
    """Kinds of user interaction the capture agent can observe."""

    CLICK = "click"
    INPUT = "input"
    SCROLL = "scroll"
    NAVIGATION = "navigation"
    HOVER = "hover"


class MessageType(str, Enum):
    """Message kinds carried by the cross-context channel."""

    INTERACTION_RECORDED = "INTERACTION_RECORDED"
    API_CALL_RECORDED = "API_CALL_RECORDED"


class Interaction(BaseModel):
    """A captured user-originated event. Immutable once created."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="Interaction identifier")
    type: InteractionType = Field(..., description="Interaction kind")
    element: str = Field(..., description="Tag name of the target element")
    selector: str = Field(..., description="Resolved locator")
    value: Optional[str] = Field(None, description="Text content, typed value or URL")
    timestamp: datetime = Field(..., description="When the event happened")
    screenshot: Optional[str] = Field(None, description="Screenshot reference")


class ApiCall(BaseModel):
    """A captured outbound network request/response pair. Immutable once created."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="API call identifier")
    method: str = Field("GET", description="HTTP method")
    url: str = Field(..., description="Request URL")
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers")
    body: Optional[Any] = Field(None, description="Request body")
    response: Optional[Any] = Field(None, description="Response payload")
    status: int = Field(0, ge=0, description="HTTP status code")
    timestamp: datetime = Field(..., description="When the call completed")

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        if not v or not v.strip():
            return "GET"
        return v.strip().upper()


class RecordingSession(BaseModel):
    """
    A single recording of a user's interaction with a target page.

    ``end_time`` is set iff the status is processing or completed.
    ``interactions`` and ``api_calls`` are append-only.
    """

    entity_kind: ClassVar[str] = "session"

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Session identifier")
    user_id: str = Field(..., description="Owning user")
    url: str = Field(..., description="Target URL")
    status: SessionStatus = Field(SessionStatus.RECORDING, description="Lifecycle status")
    start_time: datetime = Field(..., description="When recording started")
    end_time: Optional[datetime] = Field(None, description="When recording stopped")
    interactions: List[Interaction] = Field(default_factory=list)
    api_calls: List[ApiCall] = Field(default_factory=list)
    test_cases: Optional[List[TestCase]] = Field(None)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not v or not v.strip():
            raise ValueError("Target URL cannot be empty")
        return v.strip()

    @property
    def owner_id(self) -> str:
        """Owner key used by the entity store."""
        return self.user_id

    @property
    def duration(self) -> Optional[float]:
        """Recording duration in seconds, or None while still recording."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    @property
    def is_active(self) -> bool:
        """Whether the session still holds the controller."""
        return self.status != SessionStatus.COMPLETED
