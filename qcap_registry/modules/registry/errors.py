"""Error taxonomy for the registry core."""


class RegistryError(Exception):
    """Base class for all registry errors."""

    code = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(RegistryError, ValueError):
    """Raised for an empty id, a non-positive ttl or malformed metadata."""

    code = "invalid_argument"


class NotFoundError(RegistryError):
    """Raised when an id is unknown or its record has expired."""

    code = "not_found"

    def __init__(self, capability_id: str):
        super().__init__(f"Capability '{capability_id}' not found")
        self.capability_id = capability_id


class InternalError(RegistryError):
    """Unexpected storage failure."""

    code = "internal"
