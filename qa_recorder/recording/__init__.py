"""
Interaction capture: session lifecycle, capture surface and in-page agent.
"""

from .models import (
    RecordingSession,
    Interaction,
    ApiCall,
    SessionStatus,
    InteractionType,
    MessageType,
)
from .selectors import ElementDescriptor, resolve_selector
from .channel import MessageChannel
from .agent import CaptureAgent
from .surface import CaptureSurface, PlaywrightCaptureSurface
from .controller import SessionController

__all__ = [
    "RecordingSession",
    "Interaction",
    "ApiCall",
    "SessionStatus",
    "InteractionType",
    "MessageType",
    "ElementDescriptor",
    "resolve_selector",
    "MessageChannel",
    "CaptureAgent",
    "CaptureSurface",
    "PlaywrightCaptureSurface",
    "SessionController",
]
