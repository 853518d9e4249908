"""
Capture agent.

The JavaScript half (``capture_agent.js``) runs inside the recorded page and
reports raw observations through an exposed binding. The Python half turns
each observation into an ``Interaction`` or ``ApiCall`` record and posts it,
serialized, onto the message channel. The agent never calls the controller.
"""

import itertools
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.exceptions import SurfaceInjectionError
from .channel import MessageChannel
from .models import ApiCall, Interaction, InteractionType, MessageType
from .selectors import ElementDescriptor, resolve_selector
from .surface import CaptureSurface

BINDING_NAME = "__qaRecorderEmit"
SCRIPT_PATH = Path(__file__).parent / "capture_agent.js"
MAX_TEXT_LENGTH = 100
INPUT_TAGS = {"input", "textarea", "select"}


def load_agent_script(
    binding_name: str = BINDING_NAME, poll_interval: float = 1.0
) -> str:
    """Read the in-page script and bind its placeholders."""
    script = SCRIPT_PATH.read_text(encoding="utf-8")
    return script.replace("__QA_RECORDER_BINDING__", binding_name).replace(
        "__QA_RECORDER_POLL_MS__", str(int(poll_interval * 1000))
    )


class CaptureAgent:
    """Surface-side half of the capture agent."""

    def __init__(
        self,
        channel: MessageChannel,
        poll_interval: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.channel = channel
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)
        self._interaction_ids = itertools.count(1)
        self._api_ids = itertools.count(1)

    async def install(self, surface: CaptureSurface) -> None:
        """
        Instrument a launched surface.

        Raises:
            SurfaceInjectionError: If the binding or script cannot be installed
        """
        try:
            script = load_agent_script(poll_interval=self.poll_interval)
        except OSError as e:
            raise SurfaceInjectionError(
                f"Capture agent script unavailable: {e}", stage="script"
            )

        await surface.expose_binding(BINDING_NAME, self._on_binding)
        await surface.add_init_script(script)
        self.logger.debug("Capture agent installed")

    def _on_binding(self, _source: Any, payload: Any) -> None:
        self.handle_event(payload)

    def handle_event(self, payload: Any) -> bool:
        """
        Convert one raw observation into a record and post it.

        Args:
            payload: Dictionary reported by the in-page script

        Returns:
            True if a record was posted
        """
        if not isinstance(payload, dict):
            self.logger.debug(f"Ignoring non-object payload: {payload!r}")
            return False

        kind = payload.get("kind")
        try:
            if kind == "click":
                record = self._click(payload)
            elif kind == "input":
                record = self._input(payload)
            elif kind == "navigation":
                record = self._navigation(payload)
            elif kind == "api":
                record = self._api_call(payload)
            else:
                self.logger.debug(f"Ignoring unknown event kind: {kind}")
                return False
        except (ValueError, TypeError, AttributeError) as e:
            # pydantic validation errors are ValueErrors
            self.logger.warning(f"Dropping malformed {kind} event: {e}")
            return False

        if record is None:
            return False

        message_type = (
            MessageType.API_CALL_RECORDED
            if isinstance(record, ApiCall)
            else MessageType.INTERACTION_RECORDED
        )
        return self.channel.post(message_type, record.model_dump(mode="json"))

    def _timestamp(self, payload: Dict[str, Any]) -> Any:
        return payload.get("timestamp") or datetime.now(timezone.utc)

    def _next_interaction_id(self) -> str:
        return f"interaction_{next(self._interaction_ids)}"

    def _click(self, payload: Dict[str, Any]) -> Interaction:
        target = ElementDescriptor.from_payload(payload.get("target") or {})
        text = str(payload.get("text") or "")[:MAX_TEXT_LENGTH]
        return Interaction(
            id=self._next_interaction_id(),
            type=InteractionType.CLICK,
            element=target.tag,
            selector=resolve_selector(target),
            value=text,
            timestamp=self._timestamp(payload),
        )

    def _input(self, payload: Dict[str, Any]) -> Optional[Interaction]:
        target = ElementDescriptor.from_payload(payload.get("target") or {})
        if target.tag not in INPUT_TAGS:
            return None
        value = payload.get("value")
        return Interaction(
            id=self._next_interaction_id(),
            type=InteractionType.INPUT,
            element=target.tag,
            selector=resolve_selector(target),
            value=None if value is None else str(value),
            timestamp=self._timestamp(payload),
        )

    def _navigation(self, payload: Dict[str, Any]) -> Interaction:
        return Interaction(
            id=self._next_interaction_id(),
            type=InteractionType.NAVIGATION,
            element="page",
            selector="body",
            value=str(payload.get("url") or ""),
            timestamp=self._timestamp(payload),
        )

    def _api_call(self, payload: Dict[str, Any]) -> ApiCall:
        headers = payload.get("headers") or {}
        return ApiCall(
            id=f"api_{next(self._api_ids)}",
            method=str(payload.get("method") or "GET"),
            url=str(payload.get("url") or ""),
            headers={str(k): str(v) for k, v in headers.items()},
            body=payload.get("body"),
            response=payload.get("response"),
            status=int(payload.get("status") or 0),
            timestamp=self._timestamp(payload),
        )
