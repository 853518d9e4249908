"""
Selector resolution for captured event targets.

The in-page agent describes an event target as its tag, id, class list and
ancestor chain; this module turns that description into a stable locator.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ElementDescriptor:
    """Serializable description of a DOM element and its ancestors."""

    tag: str
    id: str = ""
    class_name: str = ""
    # Closest ancestor first, ending at the document element.
    ancestors: List["ElementDescriptor"] = field(default_factory=list)

    @property
    def first_class(self) -> Optional[str]:
        """First class token, or None when the element has no classes."""
        tokens = self.class_name.split()
        return tokens[0] if tokens else None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ElementDescriptor":
        """Build a descriptor from the agent's JSON payload."""
        ancestors = [
            cls(
                tag=str(a.get("tag") or "").lower(),
                id=str(a.get("id") or ""),
                class_name=_class_string(a.get("className")),
            )
            for a in payload.get("ancestors") or []
        ]
        return cls(
            tag=str(payload.get("tag") or "").lower(),
            id=str(payload.get("id") or ""),
            class_name=_class_string(payload.get("className")),
            ancestors=ancestors,
        )


def _class_string(value: Any) -> str:
    # SVG elements report className as an object rather than a string
    return value if isinstance(value, str) else ""


def resolve_selector(element: ElementDescriptor) -> str:
    """
    Derive a locator for an element.

    Prefers ``#id``, then ``.`` plus the first class token. Otherwise builds
    a ``tag[#id|.class]`` path from the root down to the element, stopping
    at the nearest ancestor that has an id.

    Args:
        element: Description of the event target

    Returns:
        Locator string
    """
    if element.id:
        return f"#{element.id}"
    if element.first_class:
        return f".{element.first_class}"

    path: List[str] = []
    for node in [element, *element.ancestors]:
        segment = node.tag or "*"
        if node.id:
            path.insert(0, f"{segment}#{node.id}")
            break
        if node.first_class:
            segment += f".{node.first_class}"
        path.insert(0, segment)

    return " > ".join(path)
