"""
Listening-post domain entities.

An implant is a registered agent; operators queue command tasks for it and
collect files it (or the operator) uploads.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from store.entities import Entity, Relation


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CommandStatus(str, enum.Enum):
    QUEUED = "queued"
    SENT = "sent"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(kw_only=True)
class Implant(Entity, entity_name="implant"):
    hostname: str = ""
    operating_system: str = ""
    ip_address: str | None = None
    registered_at: datetime = field(default_factory=utc_now)
    last_seen_at: datetime | None = None
    last_command: Relation[CommandTask] | None = None


@dataclass(kw_only=True)
class CommandTask(Entity, entity_name="command"):
    implant: Relation[Implant] | None = None
    command_text: str = ""
    arguments: tuple[str, ...] = ()
    status: CommandStatus = CommandStatus.QUEUED
    output: str | None = None
    issued_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None


@dataclass(kw_only=True)
class UploadedFile(Entity, entity_name="file"):
    filename: str = ""
    content_type: str = "application/octet-stream"
    size_bytes: int = 0
    sha256: str = ""
    uploaded_at: datetime = field(default_factory=utc_now)
    implant: Relation[Implant] | None = None
    content: bytes = field(default=b"", repr=False, metadata={"serialize": False})
