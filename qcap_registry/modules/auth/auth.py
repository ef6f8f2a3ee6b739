"""
API key authentication for qcap-registry.

Guards the mutating registry endpoints. Read endpoints and health probes
are never authenticated.
"""

import logging
import secrets
from typing import Dict, Optional, Tuple

logger = logging.getLogger("qcap_registry.auth")

ANONYMOUS = "anonymous"


class ApiKeyAuth:
    """
    Validates X-API-Key values against a configured key set.

    With no keys configured, authentication is disabled and every caller
    is treated as ``anonymous``.
    """

    def __init__(self, api_keys: Optional[str] = None):
        """
        Initialize auth.

        Args:
            api_keys: Comma separated keys, each either ``key`` or
                ``service:key``. Example: "abc123,orchestrator:def456"
        """
        self.api_keys: Dict[str, Optional[str]] = self._parse_api_keys(api_keys or "")

    @staticmethod
    def _parse_api_keys(api_keys: str) -> Dict[str, Optional[str]]:
        keys = {}
        for entry in api_keys.split(","):
            entry = entry.strip()
            if not entry:
                continue

            if ":" in entry:
                service, key = entry.split(":", 1)
                keys[key.strip()] = service.strip() or None
            else:
                keys[entry] = None
        return keys

    @property
    def enabled(self) -> bool:
        return bool(self.api_keys)

    def verify_api_key(self, api_key: Optional[str]) -> Tuple[bool, Optional[str]]:
        """
        Verify an API key.

        Returns:
            Tuple of (is_valid, service_identity)
        """
        if not self.enabled:
            return True, ANONYMOUS

        if not api_key:
            return False, None

        for known_key, service_identity in self.api_keys.items():
            # Constant-time comparison for security
            if secrets.compare_digest(api_key, known_key):
                return True, service_identity or ANONYMOUS

        logger.warning("Rejected request with unknown API key")
        return False, None
