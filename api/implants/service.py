"""
Implant business logic.
"""

from __future__ import annotations

import logging

from core.entities import Implant, utc_now
from store.repository import Repository

from . import schemas

logger = logging.getLogger(__name__)


def list_implants(implants: Repository[Implant]) -> list[Implant]:
    return list(implants.get_all())


def get_implant(implants: Repository[Implant], implant_id: int) -> Implant:
    return implants.get_by_id(implant_id)


def register_implant(implants: Repository[Implant], payload: schemas.RegisterImplantRequest) -> Implant:
    implant = implants.add(
        Implant(
            hostname=payload.hostname.strip(),
            operating_system=payload.operating_system.strip(),
            ip_address=payload.ip_address,
            last_seen_at=utc_now(),
        )
    )
    implants.store.commit()
    logger.info("implant_registered implant_id=%s hostname=%s", implant.id, implant.hostname)
    return implant


def update_implant(
    implants: Repository[Implant],
    implant_id: int,
    payload: schemas.UpdateImplantRequest,
) -> Implant:
    implant = implants.get_by_id(implant_id)
    if payload.hostname is not None:
        implant.hostname = payload.hostname.strip()
    if payload.operating_system is not None:
        implant.operating_system = payload.operating_system.strip()
    if payload.ip_address is not None:
        implant.ip_address = payload.ip_address
    if payload.heartbeat:
        implant.last_seen_at = utc_now()

    implants.update(implant)
    implants.store.commit()
    return implant


def remove_implant(implants: Repository[Implant], implant_id: int) -> None:
    # Commands and files keep their reference; it reports NotFound when fetched.
    implants.remove(implant_id)
    implants.store.commit()
    logger.info("implant_removed implant_id=%s", implant_id)
