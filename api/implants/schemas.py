"""
Implant API schemas (request models).
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class RegisterImplantRequest(BaseModel):
    hostname: str = Field(..., min_length=1, max_length=255)
    operating_system: str = Field(default="", max_length=100)
    ip_address: str | None = Field(default=None, max_length=64)


class UpdateImplantRequest(BaseModel):
    hostname: str | None = Field(default=None, min_length=1, max_length=255)
    operating_system: str | None = Field(default=None, max_length=100)
    ip_address: str | None = Field(default=None, max_length=64)
    # Marks the implant as seen now (check-in).
    heartbeat: bool = False
