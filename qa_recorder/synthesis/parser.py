"""
Response parsing for generated test case text.

Pure functions from raw model output to structured test cases, so the
marker-splitting and keyword heuristics can be tested without a model.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .models import TestCase, TestStep

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "Generated Test Case"
FALLBACK_DESCRIPTION = "AI-generated test case based on recorded interactions"
DEFAULT_DESCRIPTION = "AI-generated test case"

SECTION_MARKER = re.compile(r"Test Case\s*\d+\s*:|Scenario:|Feature:")
STEP_MARKER = re.compile(r"^(?:\d+[.)]|[*\-•]|(?:Given|When|Then|And|But)\b)")
LIST_PREFIX = re.compile(r"^(?:\d+[.)]|[*\-•])\s*")
GHERKIN_PREFIX = re.compile(r"^(?:Given|When|Then|And|But)\s+", re.IGNORECASE)
DESCRIPTION_PREFIX = re.compile(r"^\W*(?:description|purpose)\W*\s*:?\s*", re.IGNORECASE)
QUOTED = re.compile(r'"([^"]*)"|`([^`]*)`')
CSS_TOKEN = re.compile(r"(?<![\w/.])([#.][A-Za-z_][\w-]*)")
URL = re.compile(r"https?://[^\s\"'`<>]+")

INPUT_WORDS = ("input", "type", "enter", "fill")
NAVIGATE_WORDS = ("navigate", "go to", "open", "visit")
EXPECT_WORDS = ("should", "verify", "expect", "assert", "see")


def split_sections(text: str) -> List[str]:
    """
    Split generated text on ``Test Case N:``, ``Scenario:`` and ``Feature:``
    markers. Text before the first marker is discarded; no markers means no
    sections.
    """
    parts = SECTION_MARKER.split(text)
    if len(parts) < 2:
        return []
    return [part.strip() for part in parts[1:] if part.strip()]


def extract_title(section: str, index: int) -> str:
    """First line of a section, stripped of markdown emphasis."""
    first_line = section.split("\n", 1)[0]
    title = first_line.strip().strip("*#_").strip()
    return title or f"Test Case {index + 1}"


def extract_description(section: str) -> str:
    """First line mentioning a description or purpose."""
    for line in section.split("\n"):
        lowered = line.lower()
        if "description" in lowered or "purpose" in lowered:
            description = DESCRIPTION_PREFIX.sub("", line.strip()).strip().strip("*_").strip()
            if description:
                return description
    return DEFAULT_DESCRIPTION


def _quoted_tokens(text: str) -> List[str]:
    return [a or b for a, b in QUOTED.findall(text)]


def _looks_like_selector(token: str) -> bool:
    return bool(token) and (token[0] in "#.[" or "=" in token or ">" in token)


def extract_step_fields(action: str) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Pull the element reference, value and expected outcome out of a step.

    Returns:
        (element, value, expected)
    """
    lowered = action.lower()
    quoted = _quoted_tokens(action)
    css = CSS_TOKEN.findall(action)
    selectors = [q for q in quoted if _looks_like_selector(q)] or css

    element = ""
    value: Optional[str] = None
    expected: Optional[str] = None

    if "click" in lowered:
        element = quoted[0] if quoted else (css[0] if css else "")
    elif any(word in lowered for word in INPUT_WORDS):
        non_selectors = [q for q in quoted if not _looks_like_selector(q)]
        if non_selectors:
            value = non_selectors[0]
        elif len(quoted) > 1:
            value = quoted[0]
        if selectors:
            element = selectors[-1]
        elif len(quoted) > 1:
            element = quoted[1]
    elif any(word in lowered for word in NAVIGATE_WORDS):
        url = URL.search(action)
        if url:
            value = url.group(0).rstrip(".,;)")
        elif quoted:
            value = quoted[0]
    elif selectors:
        element = selectors[0]

    if action.startswith("Then") or any(word in lowered for word in EXPECT_WORDS):
        expected = GHERKIN_PREFIX.sub("", action).strip()

    return element, value, expected


def extract_steps(section: str) -> List[TestStep]:
    """Steps from numbered, bulleted and Given/When/Then/And lines."""
    steps = []
    for index, line in enumerate(section.split("\n")):
        trimmed = line.strip()
        if not STEP_MARKER.match(trimmed):
            continue
        action = LIST_PREFIX.sub("", trimmed).strip().strip("*_").strip()
        # Headings such as "**Steps:**" and labelled fields are not steps
        if not action or action.endswith(":") or DESCRIPTION_PREFIX.match(action) and (
            "description" in action.lower()[:15] or "purpose" in action.lower()[:15]
        ):
            continue
        element, value, expected = extract_step_fields(action)
        steps.append(
            TestStep(
                id=f"step_{index}",
                action=action,
                element=element,
                value=value,
                expected=expected,
            )
        )
    return steps


def parse_response(
    response: str,
    session_id: str,
    test_format: str,
    created_at: Optional[datetime] = None,
) -> List[TestCase]:
    """
    Convert generated text into test cases, one per recognized section.

    Returns an empty list when the text contains no section markers.
    """
    created_at = created_at or datetime.now(timezone.utc)
    stamp = created_at.strftime("%Y%m%d%H%M%S%f")

    test_cases = []
    for index, section in enumerate(split_sections(response)):
        test_cases.append(
            TestCase(
                id=f"test_{session_id}_{stamp}_{index}",
                session_id=session_id,
                title=extract_title(section, index),
                description=extract_description(section),
                steps=extract_steps(section),
                format=test_format,
                content=section,
                created_at=created_at,
            )
        )
    return test_cases


def fallback_test_case(
    response: str,
    session_id: str,
    test_format: str,
    created_at: Optional[datetime] = None,
) -> TestCase:
    """Single test case wrapping the raw response verbatim."""
    created_at = created_at or datetime.now(timezone.utc)
    return TestCase(
        id=f"test_{session_id}_{created_at.strftime('%Y%m%d%H%M%S%f')}",
        session_id=session_id,
        title=FALLBACK_TITLE,
        description=FALLBACK_DESCRIPTION,
        steps=[],
        format=test_format,
        content=response,
        created_at=created_at,
    )


def parse_or_fallback(
    response: str,
    session_id: str,
    test_format: str,
    created_at: Optional[datetime] = None,
) -> List[TestCase]:
    """
    Parse a response, degrading to a single fallback test case when the
    text has no recognizable sections or parsing fails. Never raises for
    parse problems and always returns at least one test case.
    """
    created_at = created_at or datetime.now(timezone.utc)
    try:
        test_cases = parse_response(response, session_id, test_format, created_at)
    except (ValueError, TypeError) as e:
        logger.warning(
            f"Parse degradation: {e}",
            extra={"metadata": {"session_id": session_id, "test_format": test_format}},
        )
        test_cases = []

    if not test_cases:
        logger.warning(
            "Parse degradation: no test case sections found, using fallback",
            extra={
                "metadata": {
                    "session_id": session_id,
                    "test_format": test_format,
                    "response_length": len(response),
                }
            },
        )
        return [fallback_test_case(response, session_id, test_format, created_at)]

    return test_cases
