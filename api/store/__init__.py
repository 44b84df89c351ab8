"""
In-memory persistence: entities, the unit of work and generic repositories.
"""

from .database import Database
from .entities import Entity, Relation
from .repository import Repository
from .unit_of_work import EntityStore

__all__ = ["Database", "Entity", "EntityStore", "Relation", "Repository"]
