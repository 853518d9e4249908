"""
Pytest configuration and shared fixtures for QA Recorder tests.

Provides a temporary configuration, an in-memory store, a fake capture
surface standing in for the browser, and sample recordings.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List
from unittest.mock import patch

import pytest

from qa_recorder.core.config import Config
from qa_recorder.core.exceptions import SurfaceInjectionError
from qa_recorder.recording.agent import BINDING_NAME
from qa_recorder.recording.controller import SessionController
from qa_recorder.recording.models import (
    ApiCall,
    Interaction,
    InteractionType,
    RecordingSession,
    SessionStatus,
)
from qa_recorder.recording.surface import CaptureSurface
from qa_recorder.storage.store import InMemoryStore
from qa_recorder.synthesis.models import TestCase, TestStep

ENV_VARS = [
    "CI",
    "QA_RECORDER_LOG_LEVEL",
    "QA_RECORDER_HEADLESS",
    "QA_RECORDER_MODEL_PROVIDER",
    "OPENAI_API_KEY",
    "OLLAMA_BASE_URL",
    "QA_RECORDER_SYNTHESIS_TIMEOUT",
]

START = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

GENERATED_RESPONSE = """Here are the test cases for the recorded flow.

Test Case 1: Buy a product
Description: Verify a user can buy a product from the landing page
1. Navigate to https://example.com
2. Click on "#buy"
3. Type "42" into "#quantity"
4. Verify the order confirmation should be displayed

Test Case 2: Buy with invalid quantity
Description: Verify the quantity field rejects invalid input
1. Navigate to https://example.com
2. Type "-1" into "#quantity"
3. Click on "#buy"
4. Then an error message should be shown
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def offline_tokenizer():
    """Force the character approximation so no tokenizer download is attempted."""
    with patch(
        "qa_recorder.synthesis.prompts.tiktoken.get_encoding",
        side_effect=OSError("offline"),
    ):
        yield


def make_config(tmp_path: Path, **overrides) -> Config:
    """Configuration rooted in a temporary directory."""
    values = dict(
        project_root=tmp_path,
        artifacts_dir=tmp_path / "artifacts",
        logs_dir=tmp_path / "logs",
        data_dir=tmp_path / "data",
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def temp_config(tmp_path):
    """Create a temporary configuration for testing."""
    config = make_config(tmp_path)
    config.openai_api_key = "test-api-key"
    config.model_provider = "mixed"
    config.log_level = "DEBUG"
    config.headless_mode = True
    config.liveness_interval = 0.01
    config.synthesis_timeout = 2.0
    config.model_max_retries = 1
    return config


class FakeSurface(CaptureSurface):
    """In-process capture surface; ``emit`` plays the role of the page script."""

    def __init__(
        self,
        fail_launch: bool = False,
        fail_binding: bool = False,
        fail_navigate: bool = False,
    ):
        self.fail_launch = fail_launch
        self.fail_binding = fail_binding
        self.fail_navigate = fail_navigate
        self.bindings: Dict[str, Callable[..., Any]] = {}
        self.scripts: List[str] = []
        self.visited: List[str] = []
        self.launched = False
        self.closed = False
        self.close_calls = 0

    async def launch(self) -> None:
        if self.fail_launch:
            raise SurfaceInjectionError("browser missing", stage="launch")
        self.launched = True
        self.closed = False

    async def expose_binding(self, name, callback) -> None:
        if self.fail_binding:
            raise SurfaceInjectionError("binding refused", stage="binding")
        self.bindings[name] = callback

    async def add_init_script(self, script: str) -> None:
        self.scripts.append(script)

    async def navigate(self, url: str) -> None:
        if self.fail_navigate:
            raise SurfaceInjectionError("page failed", url=url, stage="navigate")
        self.visited.append(url)

    def is_closed(self) -> bool:
        return self.closed or not self.launched

    async def close(self) -> None:
        self.closed = True
        self.close_calls += 1

    def emit(self, payload: Dict[str, Any]) -> None:
        """Report an observation the way the in-page script does."""
        self.bindings[BINDING_NAME](None, payload)


def click_event(element_id: str = "buy", tag: str = "button", text: str = "Buy now"):
    return {
        "kind": "click",
        "target": {"tag": tag.upper(), "id": element_id, "className": "", "ancestors": []},
        "text": text,
        "timestamp": START.isoformat(),
    }


def input_event(value: str, element_id: str = "quantity", tag: str = "input"):
    return {
        "kind": "input",
        "target": {"tag": tag.upper(), "id": element_id, "className": "", "ancestors": []},
        "value": value,
        "timestamp": START.isoformat(),
    }


def api_event(url: str = "https://example.com/api/cart", method: str = "post", status: int = 201):
    return {
        "kind": "api",
        "method": method,
        "url": url,
        "headers": {"Content-Type": "application/json"},
        "body": '{"qty": 42}',
        "response": '{"ok": true}',
        "status": status,
        "timestamp": START.isoformat(),
    }


@pytest.fixture
def fake_surface():
    """A fake capture surface that launches successfully."""
    return FakeSurface()


@pytest.fixture
def store():
    """In-memory entity store."""
    return InMemoryStore()


@pytest.fixture
def controller(temp_config, store, fake_surface):
    """Session controller wired to the fake surface."""
    return SessionController(temp_config, store, lambda: fake_surface)


@pytest.fixture
def sample_session():
    """A stopped recording with one click, one input and one API call."""
    return RecordingSession(
        id="session_20240501-abc",
        user_id="alice",
        url="https://example.com",
        status=SessionStatus.PROCESSING,
        start_time=START,
        end_time=START + timedelta(seconds=30),
        interactions=[
            Interaction(
                id="interaction_1",
                type=InteractionType.CLICK,
                element="button",
                selector="#buy",
                value="Buy now",
                timestamp=START + timedelta(seconds=5),
                screenshot="screenshots/buy.png",
            ),
            Interaction(
                id="interaction_2",
                type=InteractionType.INPUT,
                element="input",
                selector="#quantity",
                value="42",
                timestamp=START + timedelta(seconds=10),
            ),
        ],
        api_calls=[
            ApiCall(
                id="api_1",
                method="POST",
                url="https://example.com/api/cart",
                body='{"secret": "request-body"}',
                response='{"secret": "response-body"}',
                status=201,
                timestamp=START + timedelta(seconds=11),
            )
        ],
    )


@pytest.fixture
def make_test_case():
    """Factory for test cases with sensible defaults."""

    def _make(**overrides) -> TestCase:
        values = dict(
            id="test_session_20240501-abc_0",
            session_id="session_20240501-abc",
            title="Add item to cart",
            description="Verify a user can add an item to the cart",
            steps=[
                TestStep(id="step_1", action="Navigate to https://example.com/shop", value="https://example.com/shop"),
                TestStep(id="step_2", action='Click on "#buy"', element="#buy"),
                TestStep(id="step_3", action='Type "42" into "#quantity"', element="#quantity", value="42"),
                TestStep(id="step_4", action="Verify the total", expected="Verify the total"),
            ],
            format="gherkin",
            content="Test Case 1: Add item to cart\nOpen https://example.com/shop and buy.",
            created_at=START,
        )
        values.update(overrides)
        return TestCase(**values)

    return _make
