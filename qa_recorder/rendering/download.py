"""
Artifact export.

Rendered test cases leave the system through a download surface: a one-shot
``emit(content, filename, mime_type)``. Several test cases are exported as a
single concatenated text file with delimiting headers, not as an archive.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import StorageError
from ..synthesis.models import TestCase
from .renderer import FormatRenderer


class DownloadSurface(ABC):
    """Destination for rendered artifacts."""

    @abstractmethod
    def emit(self, content: bytes, filename: str, mime_type: str) -> Path:
        """Deliver one artifact and return where it ended up."""


class FileDownloadSurface(DownloadSurface):
    """Writes artifacts into a directory, usually the artifacts directory."""

    def __init__(self, output_dir: Path, logger: Optional[logging.Logger] = None):
        self.output_dir = Path(output_dir)
        self.logger = logger or logging.getLogger(__name__)

    def emit(self, content: bytes, filename: str, mime_type: str) -> Path:
        # Keep artifacts inside output_dir whatever the filename says
        target = self.output_dir / Path(filename).name
        tmp_name = None
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.output_dir, prefix=".download-")
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(
                f"Failed to write artifact {filename}: {e}",
                kind="artifact",
                entity_id=filename,
                operation="write",
            ) from e

        self.logger.info(
            f"Artifact written: {target}",
            extra={"metadata": {"filename": filename, "mime_type": mime_type, "size": len(content)}},
        )
        return target


class DownloadService:
    """Renders test cases and hands them to a download surface."""

    def __init__(
        self,
        renderer: FormatRenderer,
        surface: DownloadSurface,
        logger: Optional[logging.Logger] = None,
    ):
        self.renderer = renderer
        self.surface = surface
        self.logger = logger or logging.getLogger(__name__)

    def download_test_case(self, test_case: TestCase) -> Path:
        """Render and emit a single test case."""
        content = self.renderer.render(test_case)
        return self.surface.emit(
            content.encode("utf-8"),
            self.renderer.filename(test_case),
            self.renderer.mime_type(test_case.format),
        )

    def bundle(self, test_cases: List[TestCase], test_format: str) -> str:
        """Concatenate rendered test cases with one header per artifact."""
        parts = [f"# Test Cases Package - {test_format.upper()}\n\n"]
        for index, test_case in enumerate(test_cases, start=1):
            parts.append(f"# ========== Test Case {index}: {test_case.title} ==========\n")
            parts.append(f"# File: {self.renderer.filename(test_case)}\n\n")
            parts.append(self.renderer.render(test_case))
            parts.append("\n\n")
        return "".join(parts)

    def download_test_cases(self, test_cases: List[TestCase], test_format: str) -> Optional[Path]:
        """
        Export several test cases.

        A single test case is emitted as its own artifact; more than one is
        bundled into ``test-cases-<session>.txt``.
        """
        if not test_cases:
            self.logger.debug("No test cases to export")
            return None
        if len(test_cases) == 1:
            return self.download_test_case(test_cases[0])

        filename = f"test-cases-{test_cases[0].session_id}.txt"
        return self.surface.emit(
            self.bundle(test_cases, test_format).encode("utf-8"),
            filename,
            "text/plain",
        )
