"""
Persistence for recording sessions and test cases.
"""

from .store import EntityStore, InMemoryStore, JsonFileStore

__all__ = [
    "EntityStore",
    "InMemoryStore",
    "JsonFileStore",
]
