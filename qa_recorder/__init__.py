"""
QA Recorder - record browser sessions and turn them into test cases

Captures user interactions and API calls from a live page, then uses AI
models to synthesize pytest, Selenium BDD or Gherkin test cases from them.
"""

__version__ = "0.1.0"
__author__ = "QA Recorder Team"

from .core.config import Config
from .core.exceptions import QARecorderError
from .core.logging_config import setup_logging
from .pipeline import RecordingPipeline

__all__ = [
    "Config",
    "QARecorderError",
    "setup_logging",
    "RecordingPipeline",
]
