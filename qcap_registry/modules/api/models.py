"""
qcap-registry API data models.

These models define the JSON shape of every request and response served
by the HTTP adapter. Record fields use camelCase on the wire.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from qcap_registry.modules.registry import CapabilityRecord


# Request Models (API Input)


class RegisterCapabilityRequest(BaseModel):
    """Request to register or re-register a capability."""

    id: str = Field(..., description="Unique capability identifier", max_length=253)
    metadata: Dict[str, str] = Field(
        default_factory=dict, description="Opaque descriptive attributes, e.g. address, version"
    )
    ttl: Optional[float] = Field(
        None, description="Seconds the record stays live without renewal (server default if omitted)"
    )


# Response Models (API Output)


class CapabilityResponse(BaseModel):
    """A live capability record."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    metadata: Dict[str, str]
    registered_at: datetime = Field(alias="registeredAt")
    last_renewed_at: datetime = Field(alias="lastRenewedAt")
    ttl: float
    expires_at: datetime = Field(alias="expiresAt")

    @classmethod
    def from_record(cls, record: CapabilityRecord) -> "CapabilityResponse":
        return cls(
            id=record.id,
            metadata=dict(record.metadata),
            registered_at=record.registered_at,
            last_renewed_at=record.last_renewed_at,
            ttl=record.ttl,
            expires_at=record.expires_at,
        )


class CapabilityListResponse(BaseModel):
    """Live capabilities matching a list query."""

    capabilities: List[CapabilityResponse]
    count: int


class ErrorResponse(BaseModel):
    """Error body returned for registry failures."""

    error: str
    code: str
