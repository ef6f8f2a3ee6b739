"""
Config Module - Black Box Interface

Purpose: Application configuration management
Interface: get_config(), ConfigModule.get(), ConfigModule.get_config_schema()
Hidden: Config sources, validation logic, environment parsing

Can be replaced with different config systems (Consul, etcd, AWS Parameter Store).
"""

import os
from typing import Any, Dict, Optional


# Configuration Contract: Required and Optional Keys

REQUIRED_CONFIG_KEYS = {
    "host": "API server bind address",
    "port": "API server port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "default_ttl": "TTL in seconds applied when a registration omits one",
    "sweep_interval": "Maximum seconds between background expiry sweeps",
}

OPTIONAL_CONFIG_KEYS = {
    "redis_host": {
        "description": "Redis hostname for lifecycle event publishing (events disabled if unset)",
        "default": None,
    },
    "redis_port": {
        "description": "Redis server port number",
        "default": 6379,
    },
    "redis_db": {
        "description": "Redis database number",
        "default": 0,
    },
    "redis_password": {
        "description": "Redis authentication password",
        "default": None,
    },
    "api_keys": {
        "description": "Comma separated API keys (key or service:key); auth disabled if empty",
        "default": "",
    },
    "debug": {
        "description": "Enable debug mode",
        "default": False,
    },
}


def _parse_number(name: str, raw: str, cast=int, positive: bool = False):
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None
    if positive and value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _parse_redis_port(raw: str) -> int:
    # Kubernetes service links inject REDIS_PORT as tcp://host:port
    if raw.startswith("tcp://"):
        raw = raw.split(":")[-1]
    return _parse_number("REDIS_PORT", raw)


class ConfigModule:
    """Configuration management module."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        """
        Initialize from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
        """
        self._environ = os.environ if environ is None else environ
        self._config = self._load_from_env()
        self._validate_required_keys()

    def _getenv(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._environ.get(key, default)

    def _validate_required_keys(self) -> None:
        """
        Validate that all required configuration keys are present.

        Raises:
            ValueError: If required keys are missing
        """
        missing_keys = [
            key for key in REQUIRED_CONFIG_KEYS
            if key not in self._config or self._config[key] is None
        ]

        if missing_keys:
            raise ValueError(
                f"Missing required configuration keys: {', '.join(missing_keys)}. "
                f"Check environment variables and deployment configuration."
            )

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment."""
        port = self._getenv("API_PORT") or self._getenv("PORT") or "8080"

        return {
            # API settings
            "host": self._getenv("API_HOST", "0.0.0.0"),
            "port": _parse_number("API_PORT", port),
            "log_level": self._getenv("LOG_LEVEL", "INFO").upper(),
            "debug": self._getenv("DEBUG", "false").lower() == "true",
            # Registry settings
            "default_ttl": _parse_number(
                "DEFAULT_TTL", self._getenv("DEFAULT_TTL", "60"), cast=float, positive=True
            ),
            "sweep_interval": _parse_number(
                "SWEEP_INTERVAL", self._getenv("SWEEP_INTERVAL", "30"), cast=float, positive=True
            ),
            # Redis settings (optional event backend)
            "redis_host": self._getenv("REDIS_HOST") or None,
            "redis_port": _parse_redis_port(self._getenv("REDIS_PORT", "6379")),
            "redis_db": _parse_number("REDIS_DB", self._getenv("REDIS_DB", "0")),
            "redis_password": self._getenv("REDIS_PASSWORD"),
            # Auth settings
            "api_keys": self._getenv("API_KEYS", ""),
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self._config.copy()

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        Returns:
            Dictionary with 'required' and 'optional' key specifications

        Example:
            >>> schema = ConfigModule.get_config_schema()
            >>> print(schema['required']['default_ttl'])
            'TTL in seconds applied when a registration omits one'
        """
        return {
            "required": REQUIRED_CONFIG_KEYS.copy(),
            "optional": OPTIONAL_CONFIG_KEYS.copy(),
        }


_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


__all__ = ["get_config", "ConfigModule", "REQUIRED_CONFIG_KEYS", "OPTIONAL_CONFIG_KEYS"]
