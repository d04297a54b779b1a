"""FastAPI application factory for the cloud CMDB."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cloudcmdb import __version__
from cloudcmdb.api.deps import init_cmdb, reset_cmdb
from cloudcmdb.api.middleware import RequestBodyLimitMiddleware, RequestTimingMiddleware
from cloudcmdb.api.routers import (
    bindings,
    instances,
    model_groups,
    models,
    relation_types,
    relations,
    rules,
    topology,
)
from cloudcmdb.api.schemas import ErrorResponse, HealthResponse
from cloudcmdb.models.errors import CMDBError, ErrorKind
from cloudcmdb.service.cmdb import CMDB
from cloudcmdb.settings import Settings

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.INVALID: 400,
    ErrorKind.SYSTEM_ERROR: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Build the CMDB and load the model catalog before serving."""
    settings: Settings = app.state.settings
    cmdb = CMDB(settings)
    await cmdb.bootstrap()
    init_cmdb(cmdb)
    try:
        yield
    finally:
        reset_cmdb()


async def cmdb_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate a domain error into its HTTP status and an ErrorResponse body."""
    assert isinstance(exc, CMDBError)
    status = _STATUS_BY_KIND[exc.kind]
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = ErrorResponse(error=exc.kind.value, code=int(exc.code), message=exc.message)
    return JSONResponse(status_code=status, content=body.model_dump())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Cloud CMDB",
        description="Multi-tenant configuration management database for cloud resources.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware
    app.add_middleware(RequestBodyLimitMiddleware)
    app.add_middleware(RequestTimingMiddleware)

    app.add_exception_handler(CMDBError, cmdb_error_handler)

    # Schema
    app.include_router(models.router, prefix="/models", tags=["models"])
    app.include_router(model_groups.router, prefix="/model-groups", tags=["model-groups"])
    app.include_router(relation_types.router, prefix="/relation-types", tags=["relation-types"])

    # Instance data
    app.include_router(instances.router, prefix="/instances", tags=["instances"])
    app.include_router(relations.router, prefix="/relations", tags=["relations"])
    app.include_router(topology.router, prefix="/topology", tags=["topology"])

    # Service tree
    app.include_router(rules.router, prefix="/rules", tags=["rules"])
    app.include_router(bindings.router, prefix="/bindings", tags=["bindings"])

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    return app


def main() -> None:
    """Run the REST API server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "Cloud CMDB API Server v%s starting (host=%s, port=%d)",
        __version__,
        settings.api_server_host,
        settings.effective_port,
    )

    uvicorn.run(
        "cloudcmdb.api.app:create_app",
        factory=True,
        host=settings.api_server_host,
        port=settings.effective_port,
        log_level=settings.log_level.lower(),
    )
