"""
Command API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from core.dependencies import repository
from core.entities import CommandStatus, CommandTask, Implant
from cors.middleware import cors_policy
from cors.policies import CorsPolicyType
from store import serialization
from store.repository import Repository

from . import schemas, service

router = APIRouter()

command_repository = repository(CommandTask)
implant_repository = repository(Implant)


@router.get("/commands")
@cors_policy(CorsPolicyType.MINIMAL_GET)
def list_commands(
    implant_id: int | None = Query(default=None, ge=1),
    status: CommandStatus | None = Query(default=None),
    commands: Repository[CommandTask] = Depends(command_repository),
) -> dict:
    rows = service.list_commands(commands, implant_id=implant_id, status=status)
    return {"commands": serialization.dump(rows), "count": len(rows)}


@router.get("/commands/{command_id}")
@cors_policy(CorsPolicyType.MINIMAL_GET)
def get_command(
    command_id: int,
    expand: bool = Query(default=True),
    commands: Repository[CommandTask] = Depends(command_repository),
) -> dict:
    return serialization.dump(service.get_command(commands, command_id, expand=expand))


@router.post("/commands", status_code=201)
@cors_policy(CorsPolicyType.MINIMAL_POST)
def queue_command(
    request: schemas.QueueCommandRequest,
    commands: Repository[CommandTask] = Depends(command_repository),
    implants: Repository[Implant] = Depends(implant_repository),
) -> dict:
    return serialization.dump(service.queue_command(commands, implants, request))


@router.post("/implants/{implant_id}/checkin")
@cors_policy(CorsPolicyType.MINIMAL_POST)
def implant_checkin(
    implant_id: int,
    commands: Repository[CommandTask] = Depends(command_repository),
    implants: Repository[Implant] = Depends(implant_repository),
) -> dict:
    command = service.next_command(commands, implants, implant_id)
    return {"command": serialization.dump(command) if command is not None else None}


@router.put("/commands/{command_id}/result")
@cors_policy(CorsPolicyType.MINIMAL_POST)
def record_result(
    command_id: int,
    request: schemas.CommandResultRequest,
    commands: Repository[CommandTask] = Depends(command_repository),
) -> dict:
    return serialization.dump(service.record_result(commands, command_id, request))


@router.delete("/commands/{command_id}")
@cors_policy(CorsPolicyType.MINIMAL_POST)
def delete_command(
    command_id: int,
    commands: Repository[CommandTask] = Depends(command_repository),
) -> dict:
    service.remove_command(commands, command_id)
    return {"ok": True, "command_id": command_id}
