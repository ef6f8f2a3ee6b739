#!/usr/bin/env python3
"""
qcap-registry - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Builds the registry, auth and optional event publisher
3. Serves the HTTP adapter and runs the background sweeper

All registry logic is in the modules, following black box principles.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from qcap_registry import __version__
from qcap_registry.logging_config import configure_logging, get_logging_config
from qcap_registry.modules.api import (
    CapabilityListResponse,
    CapabilityResponse,
    ErrorResponse,
    RegisterCapabilityRequest,
)
from qcap_registry.modules.auth import ApiKeyAuth
from qcap_registry.modules.config import ConfigModule, get_config
from qcap_registry.modules.events import RegistryEventPublisher, create_redis_client
from qcap_registry.modules.registry import (
    CapabilityRecord,
    CapabilityRegistry,
    RegistryError,
    RegistrySweeper,
)

logger = logging.getLogger("qcap_registry.main")

# Fixed liveness payload, newline-terminated like a streaming JSON encoder writes it
HEALTH_BODY = b'{"status":"ok"}\n'

METADATA_FILTER_PREFIX = "metadata."

ERROR_STATUS_CODES = {
    "invalid_argument": 400,
    "not_found": 404,
    "internal": 500,
}

router = APIRouter()


# Dependency injection helpers


def get_registry(request: Request) -> CapabilityRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(503, "Service not initialized")
    return registry


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, description="API key for mutating operations"),
) -> str:
    """Verify API key and return service identity."""
    auth: ApiKeyAuth = request.app.state.auth
    is_valid, service_identity = auth.verify_api_key(x_api_key)
    if not is_valid:
        raise HTTPException(401, "Invalid API key")
    return service_identity


async def publish_event(request: Request, event_type: str, record: CapabilityRecord) -> None:
    publisher: Optional[RegistryEventPublisher] = request.app.state.publisher
    if publisher:
        await publisher.publish(event_type, record)


def metadata_filter_from_query(request: Request) -> Dict[str, str]:
    """Collect ``metadata.<key>=<value>`` query parameters into a filter."""
    return {
        key[len(METADATA_FILTER_PREFIX):]: value
        for key, value in request.query_params.items()
        if key.startswith(METADATA_FILTER_PREFIX) and len(key) > len(METADATA_FILTER_PREFIX)
    }


# Registry Endpoints


@router.post(
    "/v1/capabilities",
    response_model=CapabilityResponse,
    responses={201: {"model": CapabilityResponse}, 400: {"model": ErrorResponse}},
)
async def register_capability(
    payload: RegisterCapabilityRequest,
    request: Request,
    response: Response,
    registry: CapabilityRegistry = Depends(get_registry),
    service_identity: str = Depends(verify_api_key),
):
    """
    Register a capability, or renew it if already live.

    Returns:
        201: New record created
        200: Existing live record renewed with the latest metadata and TTL
        400: Empty id or non-positive TTL
        401: Unauthorized
    """
    ttl = payload.ttl if payload.ttl is not None else request.app.state.config.get("default_ttl")
    record, created = registry.upsert(payload.id, payload.metadata, ttl)

    if created:
        logger.info(f"Capability {record.id} registered by {service_identity}")
    await publish_event(
        request, "capability.registered" if created else "capability.renewed", record
    )

    response.status_code = 201 if created else 200
    return CapabilityResponse.from_record(record)


@router.post(
    "/v1/capabilities/{capability_id:path}/renew",
    response_model=CapabilityResponse,
    responses={404: {"model": ErrorResponse}},
)
async def renew_capability(
    capability_id: str,
    request: Request,
    registry: CapabilityRegistry = Depends(get_registry),
    service_identity: str = Depends(verify_api_key),
):
    """
    Reset the expiry clock of a live capability.

    Returns:
        200: Renewed record
        404: Unknown or expired capability
        401: Unauthorized
    """
    record = registry.renew(capability_id)
    await publish_event(request, "capability.renewed", record)
    return CapabilityResponse.from_record(record)


@router.delete(
    "/v1/capabilities/{capability_id:path}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
)
async def deregister_capability(
    capability_id: str,
    request: Request,
    registry: CapabilityRegistry = Depends(get_registry),
    service_identity: str = Depends(verify_api_key),
):
    """
    Remove a capability.

    Returns:
        204: Removed
        404: Unknown or expired capability
        401: Unauthorized
    """
    record = registry.deregister(capability_id)
    logger.info(f"Capability {capability_id} deregistered by {service_identity}")
    await publish_event(request, "capability.deregistered", record)
    return Response(status_code=204)


@router.get(
    "/v1/capabilities/{capability_id:path}",
    response_model=CapabilityResponse,
    responses={404: {"model": ErrorResponse}},
)
async def lookup_capability(
    capability_id: str, registry: CapabilityRegistry = Depends(get_registry)
):
    """
    Look up a live capability.

    Returns:
        200: Record
        404: Unknown or expired capability
    """
    return CapabilityResponse.from_record(registry.lookup(capability_id))


@router.get("/v1/capabilities", response_model=CapabilityListResponse)
async def list_capabilities(request: Request, registry: CapabilityRegistry = Depends(get_registry)):
    """
    List live capabilities.

    Filter with ``metadata.<key>=<value>`` query parameters; all pairs must match.
    """
    snapshot = registry.list(metadata_filter_from_query(request))
    capabilities = [CapabilityResponse.from_record(record) for record in snapshot]
    return CapabilityListResponse(capabilities=capabilities, count=len(capabilities))


# Health/Monitoring Endpoints


@router.get("/health")
async def health():
    """
    Liveness probe.

    Always 200 with ``{"status":"ok"}`` while the process can serve requests.
    """
    return Response(content=HEALTH_BODY, media_type="application/json")


@router.get("/healthz")
async def healthz(request: Request):
    """
    Detailed health check.

    Returns:
        200: Registry serviceable
        503: Registry lock unavailable
    """
    registry: CapabilityRegistry = request.app.state.registry
    sweeper: Optional[RegistrySweeper] = getattr(request.app.state, "sweeper", None)
    publisher: Optional[RegistryEventPublisher] = request.app.state.publisher

    if not registry.health_check():
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "registry": "unavailable"},
        )

    events_status = "disabled"
    if publisher:
        events_status = "connected" if await publisher.ping() else "disconnected"

    return {
        "status": "healthy",
        "registry": registry.stats(),
        "sweeper": "running" if sweeper and sweeper.running else "stopped",
        "events": events_status,
        "auth": "enabled" if request.app.state.auth.enabled else "disabled",
        "version": __version__,
    }


@router.get("/metrics")
async def metrics(registry: CapabilityRegistry = Depends(get_registry)):
    """Prometheus-compatible metrics endpoint."""
    stats = registry.stats()

    metrics_text = f"""# HELP qcap_registry_live_capabilities Number of live capability records
# TYPE qcap_registry_live_capabilities gauge
qcap_registry_live_capabilities {stats["live"]}
# HELP qcap_registry_stored_capabilities Number of stored records including expired ones awaiting sweep
# TYPE qcap_registry_stored_capabilities gauge
qcap_registry_stored_capabilities {stats["stored"]}
# HELP qcap_registry_operations_total Registry operations since start
# TYPE qcap_registry_operations_total counter
qcap_registry_operations_total{{operation="register"}} {stats["registrations"]}
qcap_registry_operations_total{{operation="renew"}} {stats["renewals"]}
qcap_registry_operations_total{{operation="deregister"}} {stats["deregistrations"]}
qcap_registry_operations_total{{operation="expire"}} {stats["expirations"]}
"""

    return Response(content=metrics_text, media_type="text/plain")


# Error handlers


async def registry_error_handler(request: Request, exc: RegistryError):
    """Map registry errors to HTTP status codes."""
    status_code = ERROR_STATUS_CODES.get(exc.code, 500)
    if status_code >= 500:
        logger.error(f"Registry error: {exc}")
    return JSONResponse(status_code=status_code, content={"error": exc.message, "code": exc.code})


async def validation_error_handler(request: Request, exc: ValueError):
    """Handle validation errors."""
    logger.error(f"Validation error: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc), "code": "invalid_argument"})


def create_app(
    config: Optional[ConfigModule] = None,
    registry: Optional[CapabilityRegistry] = None,
    publisher: Optional[RegistryEventPublisher] = None,
    auth: Optional[ApiKeyAuth] = None,
) -> FastAPI:
    """
    Build the FastAPI application around explicit module instances.

    When no publisher is given and REDIS_HOST is configured, one is created
    during startup and closed on shutdown.
    """
    if config is None:
        config = get_config()
    if registry is None:
        registry = CapabilityRegistry()
    if auth is None:
        auth = ApiKeyAuth(config.get("api_keys"))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle - start the sweeper and event backend.
        """
        logger.info("Starting qcap-registry...")

        owned_publisher = None
        if app.state.publisher is None and config.get("redis_host"):
            redis_client = await create_redis_client(
                config.get("redis_host"),
                config.get("redis_port"),
                config.get("redis_db"),
                config.get("redis_password"),
            )
            owned_publisher = RegistryEventPublisher(redis_client)
            app.state.publisher = owned_publisher
            logger.info(f"Publishing registry events to Redis at {config.get('redis_host')}")

        sweeper = RegistrySweeper(
            registry, interval=config.get("sweep_interval"), publisher=app.state.publisher
        )
        app.state.sweeper = sweeper
        sweeper.start()

        logger.info("qcap-registry started successfully")

        yield

        logger.info("Shutting down qcap-registry...")
        await sweeper.stop()
        if owned_publisher:
            await owned_publisher.close()
            app.state.publisher = None
        logger.info("qcap-registry shutdown complete")

    app = FastAPI(
        title="qcap-registry",
        description="Capability registry with TTL-based expiry",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.publisher = publisher
    app.state.auth = auth
    app.state.sweeper = None

    app.include_router(router)
    app.add_exception_handler(RegistryError, registry_error_handler)
    app.add_exception_handler(ValueError, validation_error_handler)
    return app


def serve(host: Optional[str] = None, port: Optional[int] = None) -> int:
    """
    Run the service until interrupted.

    Returns:
        Process exit code; 1 if the server never started (e.g. port in use)
    """
    config = get_config()
    log_level = config.get("log_level")
    configure_logging(log_level)

    host = host or config.get("host")
    port = port or config.get("port")

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(config),
            host=host,
            port=port,
            log_level=log_level.lower(),
            log_config=get_logging_config(log_level),
        )
    )
    try:
        server.run()
    except SystemExit as e:
        # uvicorn exits on bind failures
        logger.error(f"Could not serve on {host}:{port}")
        return e.code if isinstance(e.code, int) and e.code else 1

    if not server.started:
        logger.error(f"Could not serve on {host}:{port}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(serve())
