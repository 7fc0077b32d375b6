"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from api.dependencies import get_store
from core.storage import TenantConfigStore


router = APIRouter()


class HealthResponse(BaseModel):
    """Service status, including the admin credential state."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, store: TenantConfigStore = Depends(get_store)) -> HealthResponse:
    """Report storage and Baserow credential state without calling the backend."""
    token_manager = getattr(request.app.state, "token_manager", None)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=request.app.version,
        services={
            "api": "up",
            "storage": "up" if store.db_path.exists() else "missing",
            "baserow_auth": token_manager.state.value if token_manager else "not_initialized",
        },
    )


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness check for Kubernetes."""
    return {"status": "alive"}
