"""FastAPI server for tenant provisioning.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, tenants
from connectors.baserow import AuthError
from core.config import ConfigurationError
from core.mapping import FieldMappingError, FieldMappingRegistry
from core.observability.logging import configure_logging, get_logger
from core.storage import TenantConfigStore

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging()
    app.state.store.init_db()
    logger.info("Tenant provisioning API starting up...")

    yield

    token_manager = getattr(app.state, "token_manager", None)
    if token_manager is not None:
        await token_manager.close()
    logger.info("Tenant provisioning API shutting down...")


def create_app(store: Optional[TenantConfigStore] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Tenant store to use (defaults to TENANT_DB_PATH)
    """
    app = FastAPI(
        title="Tenant Provisioning API",
        description="Provision per-tenant Baserow schemas and expose their field mappings",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.store = store or TenantConfigStore()
    app.state.registry = FieldMappingRegistry()
    app.state.temporal = None
    app.state.token_manager = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc), "missing": list(exc.missing)})

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        logger.error(f"Baserow admin authentication failed: {exc}")
        return JSONResponse(status_code=502, content={"detail": "Backend authentication failed"})

    @app.exception_handler(FieldMappingError)
    async def field_mapping_error_handler(request: Request, exc: FieldMappingError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(tenants.router, prefix="/tenants", tags=["Tenants"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
