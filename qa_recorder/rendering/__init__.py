"""
Rendering of test cases into format-specific artifacts.
"""

from .renderer import FormatRenderer, classify_step, extract_url
from .download import DownloadService, DownloadSurface, FileDownloadSurface

__all__ = [
    "FormatRenderer",
    "classify_step",
    "extract_url",
    "DownloadService",
    "DownloadSurface",
    "FileDownloadSurface",
]
