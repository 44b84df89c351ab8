"""
Generic repository over one entity type.

Repositories hold no entity-specific logic; they translate CRUD calls into
reads and staged mutations on a request-scoped EntityStore.
"""

from __future__ import annotations

from typing import Generic, Iterator, TypeVar

from .entities import Entity
from .unit_of_work import EntityStore

T = TypeVar("T", bound=Entity)


class Repository(Generic[T]):
    def __init__(self, store: EntityStore, entity_type: type[T]) -> None:
        self._store = store
        self._entity_type = entity_type

    @property
    def entity_type(self) -> type[T]:
        return self._entity_type

    @property
    def store(self) -> EntityStore:
        return self._store

    def get_all(self) -> Iterator[T]:
        """
        Committed entities in id order. Each call starts a new iteration.
        """
        return self._store.read_all(self._entity_type)

    def get_by_id(self, entity_id: int) -> T:
        return self._store.read(self._entity_type, entity_id)

    def count(self) -> int:
        return sum(1 for _ in self.get_all())

    def exists(self, entity_id: int) -> bool:
        return self._store.contains(self._entity_type, entity_id)

    def add(self, entity: T) -> T:
        self._check_type(entity)
        return self._store.stage_add(entity)

    def update(self, entity: T) -> None:
        self._check_type(entity)
        self._store.stage_update(entity)

    def remove(self, entity_id: int) -> None:
        self._store.stage_remove(self._entity_type, entity_id)

    def _check_type(self, entity: Entity) -> None:
        if not isinstance(entity, self._entity_type):
            raise TypeError(
                f"Repository[{self._entity_type.__name__}] got {type(entity).__name__}."
            )
