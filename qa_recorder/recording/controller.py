"""
Session controller.

Owns the lifecycle of the single active recording session:

    recording <-> stopped (paused) -> processing -> completed

The controller is the only writer of session state. Records arrive from the
capture agent through the message channel; the ingestion guard is the
status check, not a lock.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..core.config import Config
from ..core.exceptions import ConflictError, StorageError, SurfaceInjectionError
from ..synthesis.models import TestCase
from .agent import CaptureAgent
from .channel import Message, MessageChannel
from .models import (
    ApiCall,
    Interaction,
    MessageType,
    RecordingSession,
    SessionStatus,
)
from .surface import CaptureSurface

if TYPE_CHECKING:
    from ..storage.store import EntityStore

SurfaceFactory = Callable[[], CaptureSurface]
StopListener = Callable[[RecordingSession], None]


class SessionController:
    """
    Lifecycle controller for recording sessions.

    At most one session is held at a time: from ``start()`` until
    ``complete()`` any further ``start()`` is rejected with ConflictError.
    """

    def __init__(
        self,
        config: Config,
        store: "EntityStore",
        surface_factory: SurfaceFactory,
        channel: Optional[MessageChannel] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.store = store
        self.surface_factory = surface_factory
        self.channel = channel or MessageChannel()
        self.logger = logger or logging.getLogger(__name__)

        self._session: Optional[RecordingSession] = None
        self._surface: Optional[CaptureSurface] = None
        self._accepting = False
        self._stopped = asyncio.Event()
        self._pump_task: Optional[asyncio.Task] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._stop_listeners: List[StopListener] = []

    @property
    def current_session(self) -> Optional[RecordingSession]:
        """The held session, or None when idle."""
        return self._session

    @property
    def is_accepting(self) -> bool:
        """Whether incoming records are appended."""
        return self._accepting

    def add_stop_listener(self, listener: StopListener) -> None:
        """Register a callback invoked with the session each time it stops."""
        self._stop_listeners.append(listener)

    @staticmethod
    def generate_session_id() -> str:
        """Date-prefixed unique session identifier."""
        return f"session_{datetime.now(timezone.utc):%Y%m%d}-{uuid.uuid4().hex[:16]}"

    async def start(self, url: str, user_id: str) -> RecordingSession:
        """
        Start recording ``url`` for ``user_id``.

        Raises:
            ConflictError: If a session is already active
        """
        if self._session is not None:
            raise ConflictError(
                "Recording already in progress",
                active_session_id=self._session.id,
                active_status=self._session.status.value,
            )

        # Claimed before the first await so concurrent starts are rejected
        session = RecordingSession(
            id=self.generate_session_id(),
            user_id=user_id,
            url=url,
            status=SessionStatus.RECORDING,
            start_time=datetime.now(timezone.utc),
        )
        self._session = session
        self._accepting = True
        self._stopped = asyncio.Event()

        self.logger.info(
            f"Recording session started: {session.id}",
            extra={"metadata": {"session_id": session.id, "url": url, "user_id": user_id}},
        )

        await self._persist(session)

        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.create_task(self.channel.consume(self._dispatch))

        if await self._open_surface(session):
            self._monitor_task = asyncio.create_task(self._monitor_surface(session.id))

        return session

    async def _open_surface(self, session: RecordingSession) -> bool:
        """Launch the surface, install the agent and load the page."""
        surface = self.surface_factory()
        self._surface = surface
        try:
            await surface.launch()
        except SurfaceInjectionError as e:
            self.logger.warning(
                f"Capture surface unavailable, no interactions will be captured: {e.message}",
                extra={"metadata": {"session_id": session.id, **e.to_dict()}},
            )
            self._surface = None
            return False

        agent = CaptureAgent(self.channel, poll_interval=self.config.liveness_interval)
        try:
            await agent.install(surface)
        except SurfaceInjectionError as e:
            self.logger.warning(
                f"Capture agent injection failed, recording degraded: {e.message}",
                extra={"metadata": {"session_id": session.id, **e.to_dict()}},
            )

        try:
            await surface.navigate(session.url)
        except SurfaceInjectionError as e:
            self.logger.warning(
                f"Target page failed to load, recording degraded: {e.message}",
                extra={"metadata": {"session_id": session.id, **e.to_dict()}},
            )
        return True

    async def _monitor_surface(self, session_id: str) -> None:
        """Stop the session when the user closes the capture surface."""
        while True:
            await asyncio.sleep(self.config.liveness_interval)
            session = self._session
            if session is None or session.id != session_id:
                return
            if session.status not in (SessionStatus.RECORDING, SessionStatus.STOPPED):
                return
            if self._surface is None or self._surface.is_closed():
                self.logger.info(
                    "Capture surface closed, stopping recording",
                    extra={"metadata": {"session_id": session_id}},
                )
                await self.stop()
                return

    def _dispatch(self, message: Message) -> None:
        message_type = message.get("type")
        data = message.get("data")
        try:
            if message_type == MessageType.INTERACTION_RECORDED.value:
                self.record_interaction(Interaction.model_validate(data))
            elif message_type == MessageType.API_CALL_RECORDED.value:
                self.record_api_call(ApiCall.model_validate(data))
        except PydanticValidationError as e:
            self.logger.warning(
                f"Dropping malformed {message_type} message: {e.error_count()} errors"
            )

    def record_interaction(self, record: Interaction) -> bool:
        """
        Append an interaction to the active session.

        Returns:
            False if the record was dropped (no active or accepting session)
        """
        if not self._can_record():
            self.logger.debug(f"Dropping interaction {record.id}: not recording")
            return False
        self._session.interactions.append(record)
        self.logger.debug(
            f"Interaction recorded: {record.type.value} {record.selector}",
            extra={"metadata": {"session_id": self._session.id}},
        )
        return True

    def record_api_call(self, record: ApiCall) -> bool:
        """
        Append an API call to the active session.

        Returns:
            False if the record was dropped (no active or accepting session)
        """
        if not self._can_record():
            self.logger.debug(f"Dropping API call {record.id}: not recording")
            return False
        self._session.api_calls.append(record)
        self.logger.debug(
            f"API call recorded: {record.method} {record.url} -> {record.status}",
            extra={"metadata": {"session_id": self._session.id}},
        )
        return True

    def _can_record(self) -> bool:
        return (
            self._session is not None
            and self._accepting
            and self._session.status == SessionStatus.RECORDING
        )

    def pause(self) -> bool:
        """Stop accepting records without closing the surface."""
        if self._session is None or self._session.status != SessionStatus.RECORDING:
            return False
        self._session.status = SessionStatus.STOPPED
        self._accepting = False
        self.logger.info(f"Recording paused: {self._session.id}")
        return True

    def resume(self) -> bool:
        """Accept records again after ``pause()``."""
        if self._session is None or self._session.status != SessionStatus.STOPPED:
            return False
        self._session.status = SessionStatus.RECORDING
        self._accepting = True
        self.logger.info(f"Recording resumed: {self._session.id}")
        return True

    async def stop(self) -> Optional[RecordingSession]:
        """
        Finish recording and hand the session over for synthesis.

        Returns:
            The session in processing status, or None if nothing was recording
        """
        session = self._session
        if session is None or session.status not in (
            SessionStatus.RECORDING,
            SessionStatus.STOPPED,
        ):
            return None

        self._accepting = False
        session.status = SessionStatus.PROCESSING
        session.end_time = datetime.now(timezone.utc)

        monitor = self._monitor_task
        self._monitor_task = None
        if monitor is not None and monitor is not asyncio.current_task():
            monitor.cancel()

        await self._close_surface()
        await self._persist(session)

        self.logger.info(
            f"Recording stopped: {session.id}",
            extra={
                "metadata": {
                    "session_id": session.id,
                    "interactions": len(session.interactions),
                    "api_calls": len(session.api_calls),
                    "duration": session.duration,
                }
            },
        )

        self._stopped.set()
        for listener in list(self._stop_listeners):
            listener(session)
        return session

    async def complete(
        self, session_id: str, test_cases: Optional[List[TestCase]] = None
    ) -> bool:
        """
        Mark the held session completed and release it.

        Args:
            session_id: Must match the held session
            test_cases: Test cases derived from the session, if any

        Returns:
            False if no matching session is held
        """
        session = self._session
        if session is None or session.id != session_id:
            self.logger.debug(f"Ignoring completion for unknown session {session_id}")
            return False

        if session.end_time is None:
            session.end_time = datetime.now(timezone.utc)
        if test_cases is not None:
            session.test_cases = list(test_cases)
        session.status = SessionStatus.COMPLETED
        self._accepting = False
        self._session = None

        monitor = self._monitor_task
        self._monitor_task = None
        if monitor is not None:
            monitor.cancel()
        await self._close_surface()
        await self._persist(session)

        self.logger.info(
            f"Recording session completed: {session.id}",
            extra={
                "metadata": {
                    "session_id": session.id,
                    "test_cases": len(session.test_cases or []),
                }
            },
        )
        return True

    async def wait_stopped(self) -> None:
        """Wait until the current session leaves recording/paused."""
        await self._stopped.wait()

    async def recent_sessions(self, user_id: str, limit: int = 20) -> List[RecordingSession]:
        """Sessions of ``user_id`` from the store, newest first."""
        sessions = await self.store.list(RecordingSession.entity_kind, user_id)
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions[:limit]

    async def close(self) -> None:
        """Tear down background tasks and the surface."""
        for task in (self._monitor_task, self._pump_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._monitor_task = None
        self._pump_task = None
        await self._close_surface()

    async def _close_surface(self) -> None:
        surface = self._surface
        self._surface = None
        if surface is None:
            return
        try:
            await surface.close()
        except Exception as e:
            self.logger.warning(f"Error closing capture surface: {e}")

    async def _persist(self, session: RecordingSession) -> None:
        try:
            await self.store.save(session)
        except StorageError as e:
            self.logger.warning(
                f"Failed to persist session {session.id}: {e.message}",
                extra={"metadata": e.to_dict()},
            )

    def status_snapshot(self) -> Dict[str, Any]:
        """Summary of the held session for display."""
        session = self._session
        if session is None:
            return {"active": False}
        return {
            "active": True,
            "session_id": session.id,
            "status": session.status.value,
            "accepting": self._accepting,
            "interactions": len(session.interactions),
            "api_calls": len(session.api_calls),
            "surface_open": self._surface is not None and not self._surface.is_closed(),
        }
