"""
Entity base type and explicit lazy relations.

Entities are plain dataclasses with an `id`. A `Relation[T]` points at
another entity by id and stays unresolved until `fetch(store)` is called;
the store then memoizes the target for the rest of the unit of work.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

if TYPE_CHECKING:
    from .unit_of_work import EntityStore

T = TypeVar("T", bound="Entity")

_ENTITY_TYPES: dict[str, type[Entity]] = {}


@dataclasses.dataclass(kw_only=True)
class Entity:
    """
    Base for persisted records. Subclasses register under `entity_name`:

        @dataclasses.dataclass(kw_only=True)
        class Implant(Entity, entity_name="implant"):
            hostname: str = ""
    """

    entity_name: ClassVar[str] = "entity"

    id: int | None = None

    def __init_subclass__(cls, entity_name: str | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if entity_name is None:
            return
        existing = _ENTITY_TYPES.get(entity_name)
        if existing is not None and existing.__qualname__ != cls.__qualname__:
            raise ValueError(f"Entity name {entity_name!r} is already registered.")
        cls.entity_name = entity_name
        _ENTITY_TYPES[entity_name] = cls

    def detached_copy(self: T) -> T:
        """
        Copy whose relations are unresolved, safe to hand to another store.
        """
        changes = {
            f.name: value.detached()
            for f in dataclasses.fields(self)
            if isinstance(value := getattr(self, f.name), Relation)
        }
        return dataclasses.replace(self, **changes)


def entity_type_for(name: str) -> type[Entity]:
    try:
        return _ENTITY_TYPES[name]
    except KeyError:
        raise ValueError(f"Unknown entity type: {name!r}.") from None


class Relation(Generic[T]):
    """
    Reference to another entity, materialized on demand.
    """

    __slots__ = ("entity_type", "target_id", "_value")

    def __init__(self, entity_type: type[T], target_id: int) -> None:
        self.entity_type = entity_type
        self.target_id = int(target_id)
        self._value: T | None = None

    @classmethod
    def to(cls, target: T) -> Relation[T]:
        if target.id is None:
            raise ValueError("Cannot reference an entity without an id; add it first.")
        return cls(type(target), target.id)

    @classmethod
    def resolved(cls, target: T) -> Relation[T]:
        relation = cls.to(target)
        relation._value = target
        return relation

    @property
    def is_resolved(self) -> bool:
        return self._value is not None

    @property
    def value(self) -> T:
        if self._value is None:
            raise RuntimeError(
                f"Relation to {self.entity_type.entity_name} {self.target_id} is not resolved."
            )
        return self._value

    def fetch(self, store: EntityStore) -> T:
        return store.resolve(self)

    def detached(self) -> Relation[T]:
        return Relation(self.entity_type, self.target_id)

    def _bind(self, value: T) -> None:
        self._value = value

    def _reset(self) -> None:
        self._value = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.entity_type.entity_name, self.target_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Relation):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        state = "resolved" if self.is_resolved else "unresolved"
        return f"Relation({self.entity_type.entity_name}, {self.target_id}, {state})"
