"""
Implant API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from core.dependencies import repository
from core.entities import Implant
from cors.middleware import cors_policy
from cors.policies import CorsPolicyType
from store import serialization
from store.repository import Repository

from . import schemas, service

router = APIRouter()

implant_repository = repository(Implant)


@router.get("/implants")
@cors_policy(CorsPolicyType.MINIMAL_GET)
def list_implants(implants: Repository[Implant] = Depends(implant_repository)) -> dict:
    rows = service.list_implants(implants)
    return {"implants": serialization.dump(rows), "count": len(rows)}


@router.get("/implants/{implant_id}")
@cors_policy(CorsPolicyType.MINIMAL_GET)
def get_implant(
    implant_id: int,
    implants: Repository[Implant] = Depends(implant_repository),
) -> dict:
    return serialization.dump(service.get_implant(implants, implant_id))


@router.post("/implants", status_code=201)
@cors_policy(CorsPolicyType.MINIMAL_POST)
def register_implant(
    request: schemas.RegisterImplantRequest,
    implants: Repository[Implant] = Depends(implant_repository),
) -> dict:
    return serialization.dump(service.register_implant(implants, request))


@router.put("/implants/{implant_id}")
@cors_policy(CorsPolicyType.MINIMAL_POST)
def update_implant(
    implant_id: int,
    request: schemas.UpdateImplantRequest,
    implants: Repository[Implant] = Depends(implant_repository),
) -> dict:
    return serialization.dump(service.update_implant(implants, implant_id, request))


@router.delete("/implants/{implant_id}")
@cors_policy(CorsPolicyType.MINIMAL_POST)
def delete_implant(
    implant_id: int,
    implants: Repository[Implant] = Depends(implant_repository),
) -> dict:
    service.remove_implant(implants, implant_id)
    return {"ok": True, "implant_id": implant_id}
