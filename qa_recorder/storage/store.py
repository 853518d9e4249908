"""
Entity stores for recording sessions and synthesized test cases.

The core treats persistence as an opaque ``save(entity)`` /
``list(kind, owner_id)`` service. Entities are pydantic models exposing an
``entity_kind`` class attribute and ``id`` / ``owner_id``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import StorageError
from ..recording.models import RecordingSession
from ..synthesis.models import TestCase

ENTITY_TYPES: Dict[str, Type[BaseModel]] = {
    RecordingSession.entity_kind: RecordingSession,
    TestCase.entity_kind: TestCase,
}


def _entity_kind(entity: BaseModel) -> str:
    kind = getattr(entity, "entity_kind", None)
    if kind not in ENTITY_TYPES:
        raise StorageError(
            f"Unsupported entity type: {entity.__class__.__name__}", operation="save"
        )
    return kind


class EntityStore(ABC):
    """Abstract key-value entity store."""

    @abstractmethod
    async def save(self, entity: BaseModel) -> None:
        """Insert or replace an entity."""

    @abstractmethod
    async def list(self, kind: str, owner_id: str) -> List[BaseModel]:
        """List all entities of ``kind`` owned by ``owner_id``."""


class InMemoryStore(EntityStore):
    """Process-local store; keeps deep copies so callers cannot mutate it."""

    def __init__(self):
        self._entities: Dict[str, Dict[str, BaseModel]] = {
            kind: {} for kind in ENTITY_TYPES
        }

    async def save(self, entity: BaseModel) -> None:
        kind = _entity_kind(entity)
        self._entities[kind][entity.id] = entity.model_copy(deep=True)

    async def list(self, kind: str, owner_id: str) -> List[BaseModel]:
        if kind not in self._entities:
            raise StorageError(f"Unknown entity kind: {kind}", kind=kind, operation="list")
        return [
            entity.model_copy(deep=True)
            for entity in self._entities[kind].values()
            if entity.owner_id == owner_id
        ]

    def get(self, kind: str, entity_id: str) -> Optional[BaseModel]:
        """Fetch a single entity by id."""
        entity = self._entities.get(kind, {}).get(entity_id)
        return entity.model_copy(deep=True) if entity else None


class JsonFileStore(EntityStore):
    """Stores each entity as ``<root>/<kind>/<id>.json``."""

    def __init__(
        self, root: Union[str, Path], logger: Optional[logging.Logger] = None
    ):
        self.root = Path(root)
        self.logger = logger or logging.getLogger(__name__)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, kind: str, entity_id: str) -> Path:
        safe_id = "".join(c if c.isalnum() or c in "-_." else "_" for c in entity_id)
        return self.root / kind / f"{safe_id}.json"

    async def save(self, entity: BaseModel) -> None:
        kind = _entity_kind(entity)
        path = self._path(kind, entity.id)
        payload = entity.model_dump_json(indent=2)
        try:
            await asyncio.to_thread(self._write, path, payload)
        except OSError as e:
            raise StorageError(
                f"Failed to save {kind} {entity.id}: {e}",
                kind=kind,
                entity_id=entity.id,
                operation="save",
            )
        self.logger.debug(f"Saved {kind} {entity.id} to {path}")

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(path)

    async def list(self, kind: str, owner_id: str) -> List[BaseModel]:
        model = ENTITY_TYPES.get(kind)
        if model is None:
            raise StorageError(f"Unknown entity kind: {kind}", kind=kind, operation="list")
        try:
            return await asyncio.to_thread(self._read_all, kind, model, owner_id)
        except OSError as e:
            raise StorageError(
                f"Failed to list {kind} entities: {e}", kind=kind, operation="list"
            )

    def _read_all(
        self, kind: str, model: Type[BaseModel], owner_id: str
    ) -> List[BaseModel]:
        directory = self.root / kind
        if not directory.exists():
            return []

        entities = []
        for path in sorted(directory.glob("*.json")):
            try:
                entity = model.model_validate_json(path.read_text(encoding="utf-8"))
            except (PydanticValidationError, json.JSONDecodeError, UnicodeDecodeError) as e:
                self.logger.warning(f"Skipping unreadable {kind} file {path.name}: {e}")
                continue
            if entity.owner_id == owner_id:
                entities.append(entity)
        return entities
