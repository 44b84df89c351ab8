"""
Request-scoped dependencies for FastAPI routes.
"""

from __future__ import annotations

from typing import Callable, Iterator, TypeVar

from fastapi import Depends, Request

from store.entities import Entity
from store.repository import Repository
from store.unit_of_work import EntityStore

from .container import Container

T = TypeVar("T", bound=Entity)


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_entity_store(container: Container = Depends(get_container)) -> Iterator[EntityStore]:
    # One unit of work per request; anything left uncommitted is dropped.
    store = EntityStore(container.database)
    try:
        yield store
    finally:
        store.close()


def repository(entity_type: type[T]) -> Callable[..., Repository[T]]:
    def dependency(store: EntityStore = Depends(get_entity_store)) -> Repository[T]:
        return Repository(store, entity_type)

    dependency.__name__ = f"{entity_type.entity_name}_repository"
    return dependency
