"""
API Module - Black Box Interface

Purpose: HTTP request and response contracts
Interface: Pydantic models for the REST endpoints
Hidden: Field aliasing, record conversion

The API layer only orchestrates - all registry logic lives in the
registry module.
"""

from .models import (
    CapabilityListResponse,
    CapabilityResponse,
    ErrorResponse,
    RegisterCapabilityRequest,
)

__all__ = [
    "RegisterCapabilityRequest",
    "CapabilityResponse",
    "CapabilityListResponse",
    "ErrorResponse",
]
