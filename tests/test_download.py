"""
Tests for artifact export.
"""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from qa_recorder.core.exceptions import StorageError
from qa_recorder.rendering.download import DownloadService, DownloadSurface, FileDownloadSurface
from qa_recorder.rendering.renderer import FormatRenderer


@pytest.fixture
def mock_surface():
    """Download surface recording every emit."""
    surface = Mock(spec=DownloadSurface)
    surface.emit.side_effect = lambda content, filename, mime_type: Path("/downloads") / filename
    return surface


@pytest.fixture
def service(mock_surface):
    return DownloadService(FormatRenderer(), mock_surface)


class TestFileDownloadSurface:
    """Test cases for FileDownloadSurface."""

    def test_emit_writes_file(self, tmp_path):
        surface = FileDownloadSurface(tmp_path / "out")

        path = surface.emit(b"Feature: x\n", "login.feature", "text/plain")

        assert path == tmp_path / "out" / "login.feature"
        assert path.read_bytes() == b"Feature: x\n"
        assert [p.name for p in (tmp_path / "out").iterdir()] == ["login.feature"]

    def test_emit_replaces_existing(self, tmp_path):
        surface = FileDownloadSurface(tmp_path)
        surface.emit(b"old", "a.txt", "text/plain")

        surface.emit(b"new", "a.txt", "text/plain")

        assert (tmp_path / "a.txt").read_bytes() == b"new"

    def test_filename_cannot_escape(self, tmp_path):
        """Directory parts of the filename are ignored."""
        surface = FileDownloadSurface(tmp_path / "out")

        path = surface.emit(b"x", "../evil.txt", "text/plain")

        assert path == tmp_path / "out" / "evil.txt"
        assert not (tmp_path / "evil.txt").exists()

    def test_write_failure(self, tmp_path):
        """An unusable output directory raises StorageError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file", encoding="utf-8")
        surface = FileDownloadSurface(blocker)

        with pytest.raises(StorageError) as exc_info:
            surface.emit(b"x", "a.txt", "text/plain")

        assert exc_info.value.kind == "artifact"
        assert exc_info.value.operation == "write"

    def test_failed_write_leaves_no_temp_file(self, tmp_path):
        """The partial temp file is removed when the final rename fails."""
        surface = FileDownloadSurface(tmp_path)

        with patch("qa_recorder.rendering.download.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(StorageError):
                surface.emit(b"x", "a.txt", "text/plain")

        assert list(tmp_path.iterdir()) == []


class TestDownloadService:
    """Test cases for DownloadService."""

    def test_single_test_case(self, service, mock_surface, make_test_case):
        """One test case is emitted as its own rendered artifact."""
        path = service.download_test_cases([make_test_case(format="pytest")], "pytest")

        content, filename, mime_type = mock_surface.emit.call_args.args
        assert path == Path("/downloads/test_add_item_to_cart.py")
        assert filename == "test_add_item_to_cart.py"
        assert mime_type == "text/x-python"
        assert b"class TestAddItemToCart:" in content

    def test_multiple_test_cases(self, service, mock_surface, make_test_case):
        """Several test cases are bundled into one text file."""
        test_cases = [
            make_test_case(id="a"),
            make_test_case(id="b", title="Remove item from cart"),
        ]

        service.download_test_cases(test_cases, "gherkin")

        mock_surface.emit.assert_called_once()
        content, filename, mime_type = mock_surface.emit.call_args.args
        text = content.decode("utf-8")
        assert filename == "test-cases-session_20240501-abc.txt"
        assert mime_type == "text/plain"
        assert text.startswith("# Test Cases Package - GHERKIN\n\n")
        assert "# ========== Test Case 1: Add item to cart ==========\n" in text
        assert "# ========== Test Case 2: Remove item from cart ==========\n" in text
        assert "# File: remove_item_from_cart.feature\n" in text
        assert text.count("Feature: ") == 2

    def test_no_test_cases(self, service, mock_surface):
        """Nothing is emitted for an empty result."""
        assert service.download_test_cases([], "pytest") is None
        mock_surface.emit.assert_not_called()

    def test_bundle_is_deterministic(self, service, make_test_case):
        test_cases = [make_test_case(id="a"), make_test_case(id="b")]

        assert service.bundle(test_cases, "gherkin") == service.bundle(test_cases, "gherkin")
