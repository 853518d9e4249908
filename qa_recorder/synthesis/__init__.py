"""
Test case synthesis: prompt building, completion, response parsing.
"""

from .models import TestCase, TestStep, TestFormat
from .prompts import PromptBuilder
from .parser import parse_response, parse_or_fallback, fallback_test_case
from .completion import CompletionService, CompletionResponse, ModelConfig, ModelProvider
from .synthesizer import TestCaseSynthesizer

__all__ = [
    "TestCase",
    "TestStep",
    "TestFormat",
    "PromptBuilder",
    "parse_response",
    "parse_or_fallback",
    "fallback_test_case",
    "CompletionService",
    "CompletionResponse",
    "ModelConfig",
    "ModelProvider",
    "TestCaseSynthesizer",
]
