"""
Test case synthesizer.

Turns a stopped recording into structured test cases: build a bounded
prompt, request one completion, parse the text, persist the result.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional, Set

from ..core.config import Config
from ..core.exceptions import GenerationError, ModelError, StorageError
from ..core.logging_config import log_performance
from .completion import CompletionService
from .models import TestCase
from .parser import parse_or_fallback
from .prompts import PromptBuilder

if TYPE_CHECKING:
    from ..recording.models import RecordingSession
    from ..storage.store import EntityStore


class TestCaseSynthesizer:
    """
    Generates test cases from recorded sessions.

    A completion failure raises GenerationError. Once text is obtained the
    result always holds at least one test case.
    """

    __test__ = False

    def __init__(
        self,
        completion: CompletionService,
        store: "EntityStore",
        config: Config,
        prompt_builder: Optional[PromptBuilder] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.completion = completion
        self.store = store
        self.config = config
        self.prompt_builder = prompt_builder or PromptBuilder(
            max_context_tokens=config.prompt_token_budget
        )
        self.logger = logger or logging.getLogger(__name__)
        self._pending_writes: Set[asyncio.Task] = set()

    async def generate(
        self,
        session: "RecordingSession",
        test_format: str,
        specifications: Optional[str] = None,
    ) -> List[TestCase]:
        """
        Generate test cases for a stopped session.

        Args:
            session: Recording to synthesize from; read, never modified
            test_format: One of the TestFormat values; unknown formats are
                passed through and rendered verbatim
            specifications: Optional free-text requirements for the prompt

        Raises:
            GenerationError: If the completion service fails
        """
        start = time.monotonic()
        self.logger.info(
            f"Generating {test_format} test cases for session {session.id}",
            extra={
                "metadata": {
                    "session_id": session.id,
                    "test_format": test_format,
                    "interactions": len(session.interactions),
                    "api_calls": len(session.api_calls),
                }
            },
        )

        prompt = self.prompt_builder.build_prompt(session, test_format, specifications)

        try:
            response = await self.completion.complete(prompt, self.config.max_output_tokens)
        except ModelError as e:
            self.logger.error(
                f"Test case generation failed for session {session.id}: {e.message}",
                extra={"metadata": e.to_dict()},
            )
            raise GenerationError(
                f"Failed to generate test cases: {e.message}",
                session_id=session.id,
                test_format=test_format,
            ) from e

        test_cases = parse_or_fallback(
            response, session.id, test_format, created_at=datetime.now(timezone.utc)
        )

        for test_case in test_cases:
            self._schedule_save(test_case)

        log_performance(
            self.logger,
            "test_case_generation",
            time.monotonic() - start,
            session_id=session.id,
            test_cases=len(test_cases),
        )
        return test_cases

    def _schedule_save(self, test_case: TestCase) -> None:
        task = asyncio.create_task(self._save(test_case))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _save(self, test_case: TestCase) -> None:
        try:
            await self.store.save(test_case)
        except StorageError as e:
            self.logger.warning(
                f"Failed to persist test case {test_case.id}: {e.message}",
                extra={"metadata": e.to_dict()},
            )

    async def flush(self) -> None:
        """Wait for pending test case writes."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))

    async def test_cases_for_session(self, session_id: str) -> List[TestCase]:
        """Persisted test cases of a session, oldest first."""
        test_cases = await self.store.list(TestCase.entity_kind, session_id)
        test_cases.sort(key=lambda tc: (tc.created_at, tc.id))
        return test_cases
