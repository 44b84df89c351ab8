"""
Command API schemas (request models).
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from core.entities import CommandStatus


class QueueCommandRequest(BaseModel):
    implant_id: int = Field(..., ge=1)
    command_text: str = Field(..., min_length=1, max_length=4000)
    arguments: list[str] = Field(default_factory=list, max_length=64)


class CommandResultRequest(BaseModel):
    status: CommandStatus = CommandStatus.COMPLETED
    output: str | None = Field(default=None, max_length=1_000_000)
