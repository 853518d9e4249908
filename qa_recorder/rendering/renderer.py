"""
Format renderer.

Renders structured test cases into downloadable artifacts, one Jinja2
template per test format. Rendering is pure: the same test case always
produces byte-identical output.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..synthesis.models import TestCase, TestFormat, TestStep

DEFAULT_URL = "https://example.com"
URL_PATTERN = re.compile(r"https?://[^\s\"'`<>]+")
QUOTED_PATTERN = re.compile(r'"[^"]*"')

TEMPLATES = {
    TestFormat.PYTEST: "pytest.py.j2",
    TestFormat.SELENIUM_BDD: "selenium_bdd.feature.j2",
    TestFormat.GHERKIN: "gherkin.feature.j2",
}

MIME_TYPES = {
    TestFormat.PYTEST: "text/x-python",
    TestFormat.SELENIUM_BDD: "text/plain",
    TestFormat.GHERKIN: "text/plain",
}

BDD_BACKGROUND = [
    ("Given", "the browser is open"),
    ("And", "I navigate to the application"),
]


class GherkinStep(NamedTuple):
    """One Given/When/Then/And line."""

    keyword: str
    phrase: str

    @property
    def line(self) -> str:
        return f"{self.keyword} {self.phrase}"


class StepDefinition(NamedTuple):
    """A Java step definition stub for one distinct step phrase."""

    keyword: str
    expression: str
    method_name: str
    parameters: List[str]
    phrase: str


def to_pascal_case(text: str) -> str:
    """``"user login flow"`` -> ``"UserLoginFlow"``."""
    words = re.findall(r"[A-Za-z0-9]+", text)
    name = "".join(word[0].upper() + word[1:] for word in words)
    return name or "Generated"


def to_snake_case(text: str) -> str:
    """Lower-cased, spaces to underscores, everything else non-alphanumeric dropped."""
    return re.sub(r"[^a-z0-9_]", "", re.sub(r"\s+", "_", text.lower()))


def extract_url(content: str) -> str:
    """First URL-shaped token in ``content``."""
    match = URL_PATTERN.search(content)
    if not match:
        return DEFAULT_URL
    return match.group(0).rstrip(".,;:)")


def classify_step(step: TestStep) -> GherkinStep:
    """Map a test step onto a Gherkin clause by keywords in its action."""
    action = step.action.lower()
    if "click" in action:
        return GherkinStep("When", f'I click on "{step.element}"')
    if "input" in action or "type" in action:
        return GherkinStep("When", f'I enter "{step.value or "test data"}" in "{step.element}"')
    if "navigate" in action:
        return GherkinStep("Given", f'I navigate to "{step.value or "the page"}"')
    return GherkinStep("And", f"I {action}")


def scenario_steps(test_case: TestCase) -> List[GherkinStep]:
    """Primary scenario: fixed precondition, classified steps, fixed outcome."""
    return [
        GherkinStep("Given", "I am on the application page"),
        *(classify_step(step) for step in test_case.steps),
        GherkinStep("Then", "I should see the expected results"),
        GherkinStep("And", "the page should be displayed correctly"),
    ]


def outline_steps(test_case: TestCase) -> List[GherkinStep]:
    """Scenario outline variant: typed values become the ``<data1>`` placeholder."""
    steps = []
    for step in scenario_steps(test_case):
        if step.phrase.startswith("I enter "):
            step = GherkinStep(step.keyword, QUOTED_PATTERN.sub('"<data1>"', step.phrase, count=1))
        steps.append(step)
    return steps


def step_definitions(steps: List[GherkinStep]) -> List[StepDefinition]:
    """
    One stub per distinct step phrase. ``And`` inherits the preceding
    keyword; quoted arguments become ``{string}`` parameters.
    """
    definitions: Dict[str, StepDefinition] = {}
    method_names = set()
    previous = "Given"

    for step in steps:
        keyword = previous if step.keyword in ("And", "But") else step.keyword
        previous = keyword

        expression = QUOTED_PATTERN.sub("{string}", step.phrase)
        if expression in definitions:
            continue

        base_name = re.sub(r"_+", "_", re.sub(r"[^a-z0-9]+", "_", expression.replace("{string}", "").lower())).strip("_")
        base_name = base_name or "step"
        method_name = base_name
        suffix = 2
        while method_name in method_names:
            method_name = f"{base_name}_{suffix}"
            suffix += 1
        method_names.add(method_name)

        parameters = [f"arg{i}" for i in range(expression.count("{string}"))]
        definitions[expression] = StepDefinition(keyword, expression, method_name, parameters, step.phrase)

    return list(definitions.values())


def _pyrepr(value: Any) -> str:
    return repr(value)


def _docstring(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')


def _comment(value: str) -> str:
    return " ".join(value.split())


def _java_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class FormatRenderer:
    """Renders test cases keyed on their format."""

    def __init__(self, template_dir: Optional[Path] = None, logger: Optional[logging.Logger] = None):
        """
        Initialize the renderer.

        Args:
            template_dir: Directory containing the format templates
            logger: Optional logger instance
        """
        self.template_dir = template_dir or (Path(__file__).parent / "templates")
        self.logger = logger or logging.getLogger(__name__)

        self.jinja_env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.jinja_env.filters["pyrepr"] = _pyrepr
        self.jinja_env.filters["docstring"] = _docstring
        self.jinja_env.filters["comment"] = _comment
        self.jinja_env.filters["java_string"] = _java_string

    def render(self, test_case: TestCase) -> str:
        """
        Render a test case in its own format.

        Unknown formats return ``content`` verbatim.
        """
        test_format = test_case.test_format
        if test_format is None:
            self.logger.debug(
                f"No renderer for format '{test_case.format}', passing content through",
                extra={"metadata": {"test_case_id": test_case.id}},
            )
            return test_case.content

        template = self.jinja_env.get_template(TEMPLATES[test_format])
        return template.render(**self._context(test_case))

    def _context(self, test_case: TestCase) -> Dict[str, Any]:
        scenario = scenario_steps(test_case)
        background = [GherkinStep(keyword, phrase) for keyword, phrase in BDD_BACKGROUND]
        return {
            "test_case": test_case,
            "title": test_case.title,
            "description": test_case.description,
            "created_at": test_case.created_at.isoformat(),
            "steps": test_case.steps,
            "url": extract_url(test_case.content),
            "class_name": to_pascal_case(test_case.title),
            "method_name": to_snake_case(test_case.title) or "generated_test_case",
            "feature_file": f"{to_snake_case(test_case.title) or 'test_case'}.feature",
            "background_steps": background,
            "scenario_steps": scenario,
            "outline_steps": outline_steps(test_case),
            "step_definitions": step_definitions(background + scenario),
        }

    def filename(self, test_case: TestCase) -> str:
        """Deterministic artifact filename derived from the title."""
        base_name = to_snake_case(test_case.title) or "test_case"
        test_format = test_case.test_format
        if test_format == TestFormat.PYTEST:
            return f"test_{base_name}.py"
        if test_format in (TestFormat.SELENIUM_BDD, TestFormat.GHERKIN):
            return f"{base_name}.feature"
        return f"{base_name}.txt"

    def mime_type(self, test_format: str) -> str:
        """MIME type of an artifact in ``test_format``."""
        try:
            return MIME_TYPES[TestFormat(test_format)]
        except ValueError:
            return "text/plain"
