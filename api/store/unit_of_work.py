"""
Request-scoped unit of work over the shared in-memory Database.

Reads come from committed state. Writes are staged as pending mutations and
only become visible on `commit()`, which applies all of them or none.
Updates and removals of an entity this store read are checked against the
stored object it was read from; if another commit replaced it meanwhile the
whole unit aborts instead of overwriting that change.
A store instance belongs to one request; it does no locking of its own.
"""

from __future__ import annotations

import enum
import logging
import threading
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Iterator, TypeVar

from core.errors import CommitAbortedError, CommitCancelledError, NotFoundError

from .database import Database
from .entities import Entity, Relation

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Entity)


class MutationKind(str, enum.Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


@dataclass(frozen=True)
class Mutation:
    kind: MutationKind
    entity_name: str
    entity_id: int
    snapshot: Entity | None = None
    # Stored object this store read before staging; None means unchecked.
    expected: Entity | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.entity_name, self.entity_id)


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise CommitCancelledError("Commit cancelled; no changes were applied.")


class EntityStore:
    def __init__(self, database: Database, *, cancel_event: threading.Event | None = None) -> None:
        self._database = database
        self._cancel_event = cancel_event
        self._pending: list[Mutation] = []
        # Identity map: one instance per (type, id) for the life of this store.
        self._identity: dict[tuple[str, int], Entity] = {}
        # Stored object each identity-map entry was copied from.
        self._versions: dict[tuple[str, int], Entity] = {}
        # Relations this store bound itself, keyed by id().
        self._bound: dict[int, Relation] = {}

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def pending(self) -> tuple[Mutation, ...]:
        return tuple(self._pending)

    # reads

    def read_all(self, entity_type: type[T]) -> Iterator[T]:
        name = entity_type.entity_name
        collection = self._database.collection(name)
        for entity_id in sorted(collection):
            yield self._materialize(name, entity_id, collection[entity_id])  # type: ignore[misc]

    def read(self, entity_type: type[T], entity_id: int) -> T:
        name = entity_type.entity_name
        snapshot = self._database.get(name, entity_id)
        if snapshot is None:
            raise NotFoundError(name, entity_id)
        return self._materialize(name, entity_id, snapshot)  # type: ignore[return-value]

    def _materialize(self, name: str, entity_id: int, snapshot: Entity) -> Entity:
        key = (name, entity_id)
        entity = self._identity.get(key)
        if entity is None:
            entity = self._identity[key] = snapshot.detached_copy()
            self._versions[key] = snapshot
        return entity

    def contains(self, entity_type: type[Entity], entity_id: int) -> bool:
        """
        Existence in this unit of work: committed state with pending
        mutations applied on top.
        """
        name = entity_type.entity_name
        present = self._database.get(name, entity_id) is not None
        for mutation in self._pending:
            if mutation.key != (name, entity_id):
                continue
            present = mutation.kind is not MutationKind.REMOVE
        return present

    # writes

    def stage_add(self, entity: T) -> T:
        name = entity.entity_name
        if entity.id is None:
            entity.id = self._database.next_id(name)
        else:
            self._database.reserve_id(name, entity.id)
        self._pending.append(Mutation(MutationKind.ADD, name, entity.id, entity.detached_copy()))
        return entity

    def stage_update(self, entity: Entity) -> None:
        if entity.id is None or not self.contains(type(entity), entity.id):
            raise NotFoundError(entity.entity_name, entity.id)
        name = entity.entity_name
        self._pending.append(
            Mutation(
                MutationKind.UPDATE,
                name,
                entity.id,
                entity.detached_copy(),
                expected=self._versions.get((name, entity.id)),
            )
        )

    def stage_remove(self, entity_type: type[Entity], entity_id: int) -> None:
        if not self.contains(entity_type, entity_id):
            raise NotFoundError(entity_type.entity_name, entity_id)
        name = entity_type.entity_name
        self._pending.append(
            Mutation(MutationKind.REMOVE, name, entity_id, expected=self._versions.get((name, entity_id)))
        )

    def rollback(self) -> None:
        self._pending.clear()

    def commit(self, cancel_event: threading.Event | None = None) -> None:
        """
        Apply every pending mutation or none of them.

        Raises CommitAbortedError when a mutation's precondition no longer
        holds: the id was added or removed by another request meanwhile, or
        an entity this store read was changed by another commit since. Raises
        CommitCancelledError when `cancel_event` is set before publishing.
        The pending set is cleared either way.
        """
        cancel_event = cancel_event if cancel_event is not None else self._cancel_event
        pending, self._pending = self._pending, []
        if not pending:
            return None

        names = sorted({m.entity_name for m in pending})
        try:
            with ExitStack() as locks:
                # Fixed lock order keeps concurrent multi-type commits deadlock free.
                for name in names:
                    locks.enter_context(self._database.lock_for(name))

                working = {name: dict(self._database.collection(name)) for name in names}
                touched: set[tuple[str, int]] = set()
                for mutation in pending:
                    _check_cancelled(cancel_event)
                    # Only the first mutation of a key is compared with what was read.
                    _apply(
                        working[mutation.entity_name],
                        mutation,
                        check_version=mutation.key not in touched,
                    )
                    touched.add(mutation.key)
                _check_cancelled(cancel_event)

                self._database.publish(working)
        except CommitAbortedError as exc:
            logger.warning("commit_aborted mutations=%s reason=%s", len(pending), exc)
            raise

        self._invalidate(pending)
        logger.debug("commit_applied mutations=%s types=%s", len(pending), ",".join(names))
        return None

    # relations

    def resolve(self, relation: Relation[T]) -> T:
        """
        Materialize a relation's target, once per store. A target that no
        longer exists raises NotFoundError here, not when it was removed.

        Only relations bound by this store are served from their cache; one
        resolved elsewhere (built with `Relation.resolved`, or loaded) is
        re-read from committed state.
        """
        if relation.is_resolved and id(relation) in self._bound:
            return relation.value

        entity = self.read(relation.entity_type, relation.target_id)
        relation._bind(entity)
        self._bound[id(relation)] = relation
        return entity

    def close(self) -> None:
        if self._pending:
            logger.warning("unit_of_work_discarded mutations=%s", len(self._pending))
        self._pending.clear()
        self._identity.clear()
        self._versions.clear()
        self._bound.clear()

    def _invalidate(self, applied: list[Mutation]) -> None:
        # What this store wrote is now the stored version of each key.
        for mutation in applied:
            if mutation.kind is MutationKind.REMOVE:
                self._versions.pop(mutation.key, None)
            else:
                self._versions[mutation.key] = mutation.snapshot  # type: ignore[assignment]

        stale = {m.key for m in applied if m.kind is not MutationKind.ADD}
        if not stale:
            return None
        for key in stale:
            self._identity.pop(key, None)
        for ident, relation in list(self._bound.items()):
            if relation.key in stale:
                relation._reset()
                del self._bound[ident]
        return None


def _apply(collection: dict[int, Entity], mutation: Mutation, *, check_version: bool = True) -> None:
    current = collection.get(mutation.entity_id)
    if mutation.kind is MutationKind.ADD:
        if current is not None:
            raise CommitAbortedError(f"{mutation.entity_name} {mutation.entity_id} already exists.")
        collection[mutation.entity_id] = mutation.snapshot  # type: ignore[assignment]
        return

    if current is None:
        raise CommitAbortedError(f"{mutation.entity_name} {mutation.entity_id} no longer exists.")
    if check_version and mutation.expected is not None and current is not mutation.expected:
        raise CommitAbortedError(
            f"{mutation.entity_name} {mutation.entity_id} was changed by another request."
        )
    if mutation.kind is MutationKind.UPDATE:
        collection[mutation.entity_id] = mutation.snapshot  # type: ignore[assignment]
    else:
        del collection[mutation.entity_id]
