"""
Recording pipeline.

Owns the top-level lifecycle: a session controller, a test case synthesizer
and an optional download service. Every stop, manual or caused by the user
closing the capture surface, starts synthesis in the background and arms one
deadline of ``config.synthesis_timeout`` seconds for the session. Retries
after a failed generation run inside the same window. When the deadline
passes the session is completed without test cases, whether a generation
is still running or the session is waiting for a retry, and any late
result is dropped.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional

from .core.config import Config
from .core.exceptions import GenerationError, StorageError, ValidationError
from .core.logging_config import bind_context
from .recording.controller import SessionController
from .recording.models import RecordingSession, SessionStatus
from .recording.surface import PlaywrightCaptureSurface
from .rendering.download import DownloadService, FileDownloadSurface
from .rendering.renderer import FormatRenderer
from .storage.store import EntityStore, JsonFileStore
from .synthesis.completion import CompletionService
from .synthesis.models import TestCase, TestFormat
from .synthesis.synthesizer import TestCaseSynthesizer


@dataclass
class SynthesisRequest:
    """What to synthesize once a session stops."""

    test_format: str = TestFormat.PYTEST.value
    specifications: Optional[str] = None


@dataclass
class SynthesisResult:
    """Outcome of synthesis for one stopped session."""

    session: RecordingSession
    test_cases: List[TestCase] = field(default_factory=list)
    forced: bool = False
    artifact: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and display."""
        return {
            "session_id": self.session.id,
            "status": self.session.status.value,
            "test_cases": [tc.id for tc in self.test_cases],
            "forced": self.forced,
            "artifact": str(self.artifact) if self.artifact else None,
        }


class RecordingPipeline:
    """Drives record -> stop -> synthesize -> complete -> export."""

    def __init__(
        self,
        config: Config,
        controller: SessionController,
        synthesizer: TestCaseSynthesizer,
        download: Optional[DownloadService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.controller = controller
        self.synthesizer = synthesizer
        self.download = download
        self.logger = logger or logging.getLogger(__name__)

        self._requests: Dict[str, SynthesisRequest] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._deadlines: Dict[str, float] = {}
        self._watchdogs: Dict[str, asyncio.Task] = {}
        self._last_session_id: Optional[str] = None

        self.controller.add_stop_listener(self._on_stop)

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: Optional[EntityStore] = None,
        output_dir: Optional[Path] = None,
    ) -> "RecordingPipeline":
        """Wire the default Playwright, completion and file-based collaborators."""
        store = store or JsonFileStore(config.data_dir)
        surface_factory = partial(
            PlaywrightCaptureSurface, headless=config.get_effective_headless_mode()
        )
        controller = SessionController(config, store, surface_factory)
        synthesizer = TestCaseSynthesizer(CompletionService(config), store, config)
        download = DownloadService(
            FormatRenderer(), FileDownloadSurface(output_dir or config.artifacts_dir)
        )
        return cls(config, controller, synthesizer, download)

    async def start(
        self,
        url: str,
        user_id: str,
        test_format: str = TestFormat.PYTEST.value,
        specifications: Optional[str] = None,
    ) -> RecordingSession:
        """
        Start recording and remember how to synthesize it.

        Raises:
            ConflictError: If a session is already active
        """
        session = await self.controller.start(url, user_id)
        self._requests[session.id] = SynthesisRequest(test_format, specifications)
        self._last_session_id = session.id
        return session

    def pause(self) -> bool:
        """Stop accepting records without closing the capture surface."""
        return self.controller.pause()

    def resume(self) -> bool:
        """Accept records again after ``pause()``."""
        return self.controller.resume()

    async def stop(self) -> Optional[RecordingSession]:
        """Stop recording; synthesis continues in the background."""
        return await self.controller.stop()

    async def wait_stopped(self) -> None:
        """Wait until the current recording stops for any reason."""
        await self.controller.wait_stopped()

    def _on_stop(self, session: RecordingSession) -> None:
        self._arm_deadline(session)
        self._schedule(session)

    def _session_logger(self, session: RecordingSession):
        request = self._requests.get(session.id, SynthesisRequest())
        return bind_context(self.logger, session_id=session.id, test_format=request.test_format)

    def _arm_deadline(self, session: RecordingSession) -> None:
        timeout = self.config.synthesis_timeout
        self._deadlines[session.id] = asyncio.get_running_loop().time() + timeout
        watchdog = asyncio.create_task(self._enforce_deadline(session, timeout))
        watchdog.add_done_callback(self._on_task_done)
        self._watchdogs[session.id] = watchdog

    def _disarm_deadline(self, session_id: str) -> None:
        self._deadlines.pop(session_id, None)
        watchdog = self._watchdogs.pop(session_id, None)
        if watchdog is not None and watchdog is not asyncio.current_task():
            watchdog.cancel()

    def _remaining(self, session_id: str) -> float:
        deadline = self._deadlines.get(session_id)
        if deadline is None:
            return self.config.synthesis_timeout
        return deadline - asyncio.get_running_loop().time()

    async def _enforce_deadline(self, session: RecordingSession, timeout: float) -> None:
        await asyncio.sleep(timeout)
        task = self._tasks.get(session.id)
        if task is not None and not task.done():
            # A running generation hits the same deadline in _synthesize
            await asyncio.wait({task})

        self._disarm_deadline(session.id)
        if await self.controller.complete(session.id):
            self._session_logger(session).warning(
                f"Session {session.id} not synthesized within {timeout}s, completing without test cases",
                extra={"metadata": {"timeout": timeout}},
            )

    def _schedule(self, session: RecordingSession) -> asyncio.Task:
        task = asyncio.create_task(self._synthesize(session))
        task.add_done_callback(self._on_task_done)
        self._tasks[session.id] = task
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        # GenerationError is logged in _synthesize and surfaces via wait_for_result
        if error is not None and not isinstance(error, GenerationError):
            self.logger.error(f"Background task failed: {error}", exc_info=error)

    async def _synthesize(self, session: RecordingSession) -> SynthesisResult:
        request = self._requests.get(session.id, SynthesisRequest())
        logger = self._session_logger(session)
        timeout = self.config.synthesis_timeout
        remaining = self._remaining(session.id)

        try:
            if remaining <= 0:
                raise asyncio.TimeoutError()
            test_cases = await asyncio.wait_for(
                self.synthesizer.generate(session, request.test_format, request.specifications),
                timeout=remaining,
            )
        except asyncio.TimeoutError:
            self._disarm_deadline(session.id)
            logger.warning(
                f"Synthesis for session {session.id} exceeded {timeout}s, completing without test cases",
                extra={"metadata": {"timeout": timeout}},
            )
            await self.controller.complete(session.id)
            return SynthesisResult(session=session, forced=True)
        except GenerationError as e:
            logger.error(
                f"Synthesis failed for session {session.id}, session left in processing: {e.message}",
                extra={"metadata": e.to_dict()},
            )
            raise

        self._disarm_deadline(session.id)
        if not await self.controller.complete(session.id, test_cases):
            logger.info(
                f"Discarding late synthesis result for session {session.id}",
                extra={"metadata": {"test_cases": len(test_cases)}},
            )
            return SynthesisResult(session=session, forced=True)

        result = SynthesisResult(session=session, test_cases=test_cases)
        if self.download is not None:
            try:
                result.artifact = self.download.download_test_cases(test_cases, request.test_format)
            except StorageError as e:
                logger.error(
                    f"Failed to export test cases for session {session.id}: {e.message}",
                    extra={"metadata": e.to_dict()},
                )

        logger.info(
            f"Synthesis finished for session {session.id}",
            extra={"metadata": result.to_dict()},
        )
        return result

    async def wait_for_result(self, session_id: Optional[str] = None) -> SynthesisResult:
        """
        Wait for synthesis of a stopped session, the latest one by default.

        Raises:
            ValidationError: If no synthesis was started for the session
            GenerationError: If the completion service failed
        """
        session_id = session_id or self._last_session_id
        task = self._tasks.get(session_id) if session_id else None
        if task is None:
            raise ValidationError(
                f"No synthesis started for session {session_id}",
                validation_type="session",
            )
        return await task

    async def retry(self, session_id: str) -> SynthesisResult:
        """
        Run synthesis again for a session left in processing by a failure.

        The retry shares the deadline armed when the session stopped; once it
        has passed the session is already completed and cannot be retried.

        Raises:
            ValidationError: If the session is not awaiting synthesis
            GenerationError: If the completion service fails again
        """
        session = self.controller.current_session
        if session is None or session.id != session_id or session.status != SessionStatus.PROCESSING:
            raise ValidationError(
                f"Session {session_id} is not awaiting synthesis",
                validation_type="session",
            )
        task = self._tasks.get(session_id)
        if task is not None and not task.done():
            return await task

        self.logger.info(f"Retrying synthesis for session {session_id}")
        return await self._schedule(session)

    async def abandon(self, session_id: str) -> bool:
        """Complete a session awaiting synthesis without test cases."""
        self._disarm_deadline(session_id)
        task = self._tasks.get(session_id)
        if task is not None and not task.done():
            task.cancel()
        return await self.controller.complete(session_id)

    async def test_cases_for_session(self, session_id: str) -> List[TestCase]:
        """Persisted test cases of a session."""
        await self.synthesizer.flush()
        return await self.synthesizer.test_cases_for_session(session_id)

    async def recent_sessions(self, user_id: str, limit: int = 20) -> List[RecordingSession]:
        """Sessions of a user, newest first."""
        return await self.controller.recent_sessions(user_id, limit)

    async def close(self) -> None:
        """Cancel pending synthesis, flush writes and release the surface."""
        for session_id in list(self._watchdogs):
            self._disarm_deadline(session_id)
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.synthesizer.flush()
        await self.controller.close()
