"""
Command tasking.

Flow:
1) Operator queues a command for an implant
2) Implant picks it up (status `sent`)
3) Implant reports output (status `completed` / `failed`)
"""

from __future__ import annotations

import logging

from fastapi import HTTPException

from core.entities import CommandStatus, CommandTask, Implant, utc_now
from store.entities import Relation
from store.repository import Repository

from . import schemas

logger = logging.getLogger(__name__)

_FINAL_STATUSES = {CommandStatus.COMPLETED, CommandStatus.FAILED}


def list_commands(
    commands: Repository[CommandTask],
    *,
    implant_id: int | None = None,
    status: CommandStatus | None = None,
) -> list[CommandTask]:
    rows = []
    for command in commands.get_all():
        if implant_id is not None and (command.implant is None or command.implant.target_id != implant_id):
            continue
        if status is not None and command.status is not status:
            continue
        rows.append(command)
    return rows


def get_command(commands: Repository[CommandTask], command_id: int, *, expand: bool = True) -> CommandTask:
    """
    Load a command; with `expand` its implant (and that implant's last
    command) are materialized. A removed implant raises NotFoundError.
    """
    command = commands.get_by_id(command_id)
    if expand and command.implant is not None:
        implant = command.implant.fetch(commands.store)
        if implant.last_command is not None:
            implant.last_command.fetch(commands.store)
    return command


def queue_command(
    commands: Repository[CommandTask],
    implants: Repository[Implant],
    payload: schemas.QueueCommandRequest,
) -> CommandTask:
    implant = implants.get_by_id(payload.implant_id)
    command = commands.add(
        CommandTask(
            implant=Relation.to(implant),
            command_text=payload.command_text.strip(),
            arguments=tuple(payload.arguments),
        )
    )
    implant.last_command = Relation.to(command)
    implants.update(implant)
    commands.store.commit()

    logger.info("command_queued command_id=%s implant_id=%s", command.id, implant.id)
    return command


def next_command(
    commands: Repository[CommandTask],
    implants: Repository[Implant],
    implant_id: int,
) -> CommandTask | None:
    """
    Implant check-in: hand out the oldest queued command and mark it sent.
    """
    implant = implants.get_by_id(implant_id)
    implant.last_seen_at = utc_now()
    implants.update(implant)

    pending = list_commands(commands, implant_id=implant_id, status=CommandStatus.QUEUED)
    command = pending[0] if pending else None
    if command is not None:
        command.status = CommandStatus.SENT
        commands.update(command)

    commands.store.commit()
    return command


def record_result(
    commands: Repository[CommandTask],
    command_id: int,
    payload: schemas.CommandResultRequest,
) -> CommandTask:
    command = commands.get_by_id(command_id)
    if command.status in _FINAL_STATUSES:
        raise HTTPException(status_code=409, detail="Command already has a result.")
    if payload.status not in _FINAL_STATUSES:
        raise HTTPException(status_code=400, detail="Result status must be completed or failed.")

    command.status = payload.status
    command.output = payload.output
    command.completed_at = utc_now()
    commands.update(command)
    commands.store.commit()

    logger.info("command_result command_id=%s status=%s", command.id, command.status.value)
    return command


def remove_command(commands: Repository[CommandTask], command_id: int) -> None:
    commands.remove(command_id)
    commands.store.commit()
