"""
Registry Module - Black Box Interface

Purpose: Store capability records with TTL-based expiry
Interface: register(), renew(), deregister(), lookup(), list(), sweep(), health_check()
Hidden: Table layout, locking discipline, reclamation timing

Expired records are never returned, whether reclaimed by the background
sweeper or lazily on access.
"""

from .errors import InternalError, InvalidArgumentError, NotFoundError, RegistryError
from .registry import MAX_TTL, CapabilityRecord, CapabilityRegistry, RecordSnapshot, utc_now
from .sweeper import RegistrySweeper

__all__ = [
    "CapabilityRecord",
    "CapabilityRegistry",
    "RecordSnapshot",
    "RegistrySweeper",
    "RegistryError",
    "InvalidArgumentError",
    "NotFoundError",
    "InternalError",
    "utc_now",
    "MAX_TTL",
]
