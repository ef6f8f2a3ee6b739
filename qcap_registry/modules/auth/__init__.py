"""
Auth Module - Black Box Interface

Purpose: Authenticate callers of mutating registry endpoints
Interface: ApiKeyAuth.verify_api_key()
Hidden: Key parsing, comparison strategy
"""

from .auth import ANONYMOUS, ApiKeyAuth

__all__ = ["ApiKeyAuth", "ANONYMOUS"]
