"""
qcap-registry - Capability Registry Service

Holds capability records keyed by id, expires them by TTL, and serves
register/renew/deregister/lookup/list over HTTP.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- registry: In-memory record table, expiry and background sweep
- api: REST request/response models
- auth: API key authentication
- events: Lifecycle event publishing
- config: Environment configuration
- digest: Content digests
"""

__version__ = "0.1.0"
