"""
Reference-preserving (de)serialization of entity graphs.

Every entity object is written once with a `$id` token and its `$type`;
later occurrences of the same instance become `{"$ref": "<id>"}`. This
keeps relation cycles (implant -> last command -> implant) finite.

    [
      {"$id": "1", "$type": "implant", "id": 1, ...},
      {"$id": "2", "$type": "command", "id": 2, "implant": {"$ref": "1"}, ...}
    ]

Unresolved relations are written as `{"$relation": "<type>", "id": <id>}`.
Dataclass fields declared with `metadata={"serialize": False}` are skipped.
"""

from __future__ import annotations

import dataclasses
import enum
import types
import typing
from datetime import datetime
from typing import Any

from .entities import Entity, Relation, entity_type_for

ID_KEY = "$id"
REF_KEY = "$ref"
TYPE_KEY = "$type"
RELATION_KEY = "$relation"


def _serialized_fields(entity_type: type[Entity]) -> list[dataclasses.Field]:
    return [f for f in dataclasses.fields(entity_type) if f.metadata.get("serialize", True)]


class _Writer:
    def __init__(self) -> None:
        self._ids: dict[int, str] = {}

    def write(self, value: Any) -> Any:
        if isinstance(value, Entity):
            return self._write_entity(value)
        if isinstance(value, Relation):
            if value.is_resolved:
                return self._write_entity(value.value)
            return {RELATION_KEY: value.entity_type.entity_name, "id": value.target_id}
        if isinstance(value, enum.Enum):
            return value.value
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, dict):
            return {str(k): self.write(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.write(v) for v in value]
        return value

    def _write_entity(self, entity: Entity) -> dict[str, Any]:
        key = id(entity)
        if key in self._ids:
            return {REF_KEY: self._ids[key]}

        ref = str(len(self._ids) + 1)
        self._ids[key] = ref
        data: dict[str, Any] = {ID_KEY: ref, TYPE_KEY: entity.entity_name}
        for f in _serialized_fields(type(entity)):
            data[f.name] = self.write(getattr(entity, f.name))
        return data


def dump(value: Any) -> Any:
    """
    Convert entities (or lists/dicts containing them) to JSON-compatible data.
    """
    return _Writer().write(value)


def _is_entity_payload(value: Any) -> bool:
    return isinstance(value, dict) and (TYPE_KEY in value or REF_KEY in value)


def _field_default(f: dataclasses.Field) -> Any:
    if f.default is not dataclasses.MISSING:
        return f.default
    if f.default_factory is not dataclasses.MISSING:
        return f.default_factory()
    return None


def _coerce(hint: Any, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(hint, types.UnionType) or typing.get_origin(hint) is typing.Union:
        candidates = typing.get_args(hint)
    else:
        candidates = (hint,)
    for candidate in candidates:
        if candidate is datetime and isinstance(value, str):
            return datetime.fromisoformat(value)
        if typing.get_origin(candidate) is tuple and isinstance(value, list):
            return tuple(value)
        if typing.get_origin(candidate) is not None or not isinstance(candidate, type):
            continue
        if issubclass(candidate, enum.Enum):
            return candidate(value)
    return value


class _Reader:
    def __init__(self) -> None:
        self._refs: dict[str, Entity] = {}

    def read(self, value: Any) -> Any:
        if _is_entity_payload(value):
            return self._read_entity(value)
        if isinstance(value, list):
            return [self.read(v) for v in value]
        if isinstance(value, dict):
            return {k: self.read(v) for k, v in value.items()}
        return value

    def _read_entity(self, data: dict[str, Any]) -> Entity:
        if REF_KEY in data:
            try:
                return self._refs[str(data[REF_KEY])]
            except KeyError:
                raise ValueError(f"Unknown reference token: {data[REF_KEY]!r}.") from None

        entity_type = entity_type_for(str(data[TYPE_KEY]))
        # Register before reading fields so cycles can point back at this instance.
        entity = entity_type.__new__(entity_type)
        if ID_KEY in data:
            self._refs[str(data[ID_KEY])] = entity

        hints = typing.get_type_hints(entity_type)
        for f in dataclasses.fields(entity_type):
            if f.name not in data or not f.metadata.get("serialize", True):
                setattr(entity, f.name, _field_default(f))
                continue
            setattr(entity, f.name, self._read_field(hints.get(f.name), data[f.name]))
        return entity

    def _read_field(self, hint: Any, raw: Any) -> Any:
        if _is_entity_payload(raw):
            return Relation.resolved(self._read_entity(raw))
        if isinstance(raw, dict) and RELATION_KEY in raw:
            return Relation(entity_type_for(str(raw[RELATION_KEY])), int(raw["id"]))
        return _coerce(hint, raw)


def load(data: Any) -> Any:
    """
    Rebuild an entity graph written by `dump`. `$ref` tokens resolve to
    the same instance; embedded relations come back resolved.
    """
    return _Reader().read(data)
