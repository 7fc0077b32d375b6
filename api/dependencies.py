"""Request dependencies.

Shared objects live on ``app.state`` (created in the server lifespan). Each
getter is a FastAPI dependency so routes stay free of construction logic and
tests can swap any of them through ``app.dependency_overrides``.
"""

from typing import AsyncIterator

from fastapi import Request
from temporalio.client import Client

from connectors.baserow import BaserowApiClient, TokenLifecycleManager
from core.config import BaserowSettings
from core.mapping import FieldMappingRegistry
from core.provisioning import SchemaProvisioner
from core.storage import TenantConfigStore
from temporal_client import get_temporal_client


def get_store(request: Request) -> TenantConfigStore:
    return request.app.state.store


def get_registry(request: Request) -> FieldMappingRegistry:
    return request.app.state.registry


async def get_temporal(request: Request) -> Client:
    """Temporal client, connected on first use."""
    if getattr(request.app.state, "temporal", None) is None:
        request.app.state.temporal = await get_temporal_client()
    return request.app.state.temporal


def get_token_manager(request: Request) -> TokenLifecycleManager:
    """The process-wide admin credential manager (created on first use)."""
    if getattr(request.app.state, "token_manager", None) is None:
        settings = BaserowSettings.from_env()
        settings.validate()
        request.app.state.token_manager = TokenLifecycleManager(settings)
    return request.app.state.token_manager


async def get_provisioner(request: Request) -> AsyncIterator[SchemaProvisioner]:
    """Provisioner with a connected Baserow client for the request."""
    token_manager = get_token_manager(request)
    settings = token_manager.settings
    async with BaserowApiClient(token_manager, settings) as client:
        yield SchemaProvisioner(client, token_manager, workspace_id=settings.workspace_id)
