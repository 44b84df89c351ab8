"""
Process-wide in-memory backing collections.

One collection per entity type (`id -> snapshot`), one id sequence and one
write lock per type. Collections are replaced wholesale on publish, and a
multi-type commit swaps all of its collections at once.
Contents are lost when the process exits.
"""

from __future__ import annotations

import threading
from typing import Mapping

from .entities import Entity


class Database:
    def __init__(self, name: str = "listening-post") -> None:
        self.name = name
        self._collections: dict[str, dict[int, Entity]] = {}
        self._sequences: dict[str, int] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, entity_name: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(entity_name)
            if lock is None:
                lock = self._locks[entity_name] = threading.Lock()
            return lock

    def next_id(self, entity_name: str) -> int:
        with self._guard:
            value = self._sequences.get(entity_name, 0) + 1
            self._sequences[entity_name] = value
            return value

    def reserve_id(self, entity_name: str, entity_id: int) -> None:
        # Explicit ids push the sequence forward so generated ids never collide.
        with self._guard:
            if entity_id > self._sequences.get(entity_name, 0):
                self._sequences[entity_name] = entity_id

    def collection(self, entity_name: str) -> Mapping[int, Entity]:
        return self._collections.get(entity_name, {})

    def get(self, entity_name: str, entity_id: int) -> Entity | None:
        return self.collection(entity_name).get(entity_id)

    def publish(self, collections: Mapping[str, dict[int, Entity]]) -> None:
        """
        Replace the given types' collections in one swap, so readers see
        either all of a commit or none of it. Callers must hold
        `lock_for(name)` for every type being replaced.
        """
        with self._guard:
            self._collections = {**self._collections, **collections}

    def clear(self) -> None:
        with self._guard:
            self._collections = {}
            self._sequences.clear()
