"""
Data models for synthesized test cases.
"""

from datetime import datetime
from enum import Enum
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TestFormat(str, Enum):
    """Supported test artifact dialects."""

    __test__ = False

    PYTEST = "pytest"
    SELENIUM_BDD = "selenium_bdd"
    GHERKIN = "gherkin"


class TestStep(BaseModel):
    """A single step of a synthesized test case."""

    __test__ = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="Step identifier")
    action: str = Field(..., description="Action description")
    element: str = Field("", description="Target element reference")
    value: Optional[str] = Field(None, description="Value typed or navigated to")
    expected: Optional[str] = Field(None, description="Expected outcome")


class TestCase(BaseModel):
    """A structured test case derived from a recording session."""

    __test__ = False

    entity_kind: ClassVar[str] = "test_case"

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., description="Test case identifier")
    session_id: str = Field(..., description="Owning recording session id")
    title: str = Field(..., description="Test case title")
    description: str = Field("", description="What the test verifies")
    steps: List[TestStep] = Field(default_factory=list, description="Ordered steps")
    format: str = Field(..., description="Target artifact format")
    content: str = Field("", description="Raw generated content")
    created_at: datetime = Field(..., description="Creation timestamp")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError("Test case title cannot be empty")
        return v.strip()

    @property
    def owner_id(self) -> str:
        """Owner key used by the entity store."""
        return self.session_id

    @property
    def test_format(self) -> Optional[TestFormat]:
        """Format as a TestFormat, or None for unrecognized formats."""
        try:
            return TestFormat(self.format)
        except ValueError:
            return None
