"""
Prompt construction for test case synthesis.

Turns a finished recording into a bounded JSON context plus format-specific
instructions. Screenshots and request/response bodies never enter the prompt.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import tiktoken

from .models import TestFormat

if TYPE_CHECKING:
    from ..recording.models import RecordingSession

logger = logging.getLogger(__name__)

MAX_VALUE_LENGTH = 200

FORMAT_GUIDELINES: Dict[TestFormat, str] = {
    TestFormat.PYTEST: """
- Use pytest framework with selenium webdriver
- Include proper fixtures for setup/teardown
- Use page object model pattern
- Add proper assertions with meaningful error messages
- Include parametrized tests for data-driven scenarios
""",
    TestFormat.SELENIUM_BDD: """
- Use Cucumber/Gherkin syntax with Java/Selenium
- Create feature files with scenarios
- Include step definitions
- Use page object model
- Add proper Given/When/Then structure
""",
    TestFormat.GHERKIN: """
- Pure Gherkin/Cucumber format
- Clear Given/When/Then steps
- Use scenario outlines for data-driven tests
- Include background steps for common setup
- Add tags for test organization
""",
}

PROMPT_TEMPLATE = """
You are an expert QA automation engineer. Analyze the following user interaction recording and generate comprehensive test cases.

Recording Context:
{context}

{specifications}Generate test cases in {format} format. Follow these guidelines:

1. Create meaningful test case names that describe the user flow
2. Include proper setup and teardown steps
3. Add assertions to verify expected outcomes
4. Handle edge cases and error scenarios
5. Use appropriate selectors and wait strategies
6. Include data-driven test scenarios where applicable

For {format} format:
{guidelines}
Start every test case with a line "Test Case N: <title>", follow it with a
"Description: <purpose>" line, then list the steps one per line as numbered
items. Quote element selectors and typed values, for example:
1. Click on "#submit"
2. Type "hello" into "#search"

Generate 2-3 comprehensive test cases covering the main user flow and important edge cases.
"""


class PromptBuilder:
    """Builds synthesis prompts bounded to a token budget."""

    def __init__(self, max_context_tokens: int = 3000, encoding_name: str = "cl100k_base"):
        """
        Initialize the prompt builder.

        Args:
            max_context_tokens: Upper bound for the serialized recording context
            encoding_name: tiktoken encoding used for counting
        """
        self.max_context_tokens = max_context_tokens
        self.encoding_name = encoding_name
        self._encoding: Optional[tiktoken.Encoding] = None
        self._encoding_failed = False

    def count_tokens(self, text: str) -> int:
        """Count tokens in text."""
        if self._encoding is None and not self._encoding_failed:
            try:
                self._encoding = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                # Encoding files are fetched on first use and may be unavailable offline
                logger.warning(f"Failed to load {self.encoding_name}, using character approximation: {e}")
                self._encoding_failed = True

        if self._encoding is None:
            # Rough approximation: 1 token ≈ 4 characters
            return len(text) // 4
        return len(self._encoding.encode(text))

    def summarize_session(self, session: "RecordingSession") -> Dict[str, Any]:
        """Reduce a session to the fields the model needs."""
        interactions = [
            {
                "type": i.type.value,
                "element": i.element,
                "selector": i.selector,
                "value": _clip(i.value),
                "timestamp": i.timestamp.isoformat(),
            }
            for i in session.interactions
        ]
        api_calls = [
            {
                "method": c.method,
                "url": c.url,
                "status": c.status,
                "timestamp": c.timestamp.isoformat(),
            }
            for c in session.api_calls
        ]
        return {
            "url": session.url,
            "duration_seconds": session.duration,
            "interactions": interactions,
            "api_calls": api_calls,
        }

    def build_context(self, session: "RecordingSession") -> str:
        """
        Serialize the session, trimming the middle of long record lists
        until the context fits ``max_context_tokens``.
        """
        summary = self.summarize_session(session)
        interactions = summary["interactions"]
        api_calls = summary["api_calls"]

        keep_interactions = len(interactions)
        keep_api_calls = len(api_calls)
        context = _render_context(summary, interactions, api_calls, keep_interactions, keep_api_calls)

        while self.count_tokens(context) > self.max_context_tokens:
            if keep_interactions == 0 and keep_api_calls == 0:
                break
            # Shrink the longer list first
            if keep_interactions >= keep_api_calls:
                keep_interactions = keep_interactions * 3 // 4
            else:
                keep_api_calls = keep_api_calls * 3 // 4
            context = _render_context(summary, interactions, api_calls, keep_interactions, keep_api_calls)

        if keep_interactions < len(interactions) or keep_api_calls < len(api_calls):
            logger.info(
                "Recording context trimmed to token budget",
                extra={
                    "metadata": {
                        "session_id": session.id,
                        "interactions_kept": keep_interactions,
                        "interactions_total": len(interactions),
                        "api_calls_kept": keep_api_calls,
                        "api_calls_total": len(api_calls),
                    }
                },
            )
        return context

    def format_guidelines(self, test_format: str) -> str:
        """Instruction block for a format; empty for unknown formats."""
        try:
            return FORMAT_GUIDELINES[TestFormat(test_format)]
        except ValueError:
            return ""

    def build_prompt(
        self,
        session: "RecordingSession",
        test_format: str,
        specifications: Optional[str] = None,
    ) -> str:
        """Build the complete synthesis prompt."""
        specs_block = (
            f"Additional Specifications:\n{specifications.strip()}\n\n"
            if specifications and specifications.strip()
            else ""
        )
        return PROMPT_TEMPLATE.format(
            context=self.build_context(session),
            specifications=specs_block,
            format=test_format,
            guidelines=self.format_guidelines(test_format),
        )


def _clip(value: Optional[str]) -> Optional[str]:
    if value is None or len(value) <= MAX_VALUE_LENGTH:
        return value
    return value[:MAX_VALUE_LENGTH] + "..."


def _keep_ends(records: List[Dict[str, Any]], keep: int) -> List[Dict[str, Any]]:
    """Keep the first and last records, dropping from the middle."""
    if keep >= len(records):
        return records
    head = (keep + 1) // 2
    tail = keep - head
    return records[:head] + (records[-tail:] if tail else [])


def _render_context(
    summary: Dict[str, Any],
    interactions: List[Dict[str, Any]],
    api_calls: List[Dict[str, Any]],
    keep_interactions: int,
    keep_api_calls: int,
) -> str:
    payload = {
        "url": summary["url"],
        "duration_seconds": summary["duration_seconds"],
        "interactions": _keep_ends(interactions, keep_interactions),
        "api_calls": _keep_ends(api_calls, keep_api_calls),
    }
    omitted_interactions = len(interactions) - len(payload["interactions"])
    omitted_api_calls = len(api_calls) - len(payload["api_calls"])
    if omitted_interactions:
        payload["omitted_interactions"] = omitted_interactions
    if omitted_api_calls:
        payload["omitted_api_calls"] = omitted_api_calls
    return json.dumps(payload, indent=2)
