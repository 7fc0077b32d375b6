"""Tenant provisioning endpoints.

Provisioning runs as a Temporal workflow: POST starts it and returns 202,
GET polls the job record. Linking can be re-run synchronously once the
tenant's tables exist.
"""

import sqlite3
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from temporalio.client import Client
from temporalio.common import WorkflowIDReusePolicy
from temporalio.exceptions import WorkflowAlreadyStartedError

from api.dependencies import get_provisioner, get_registry, get_store, get_temporal
from core.mapping import FieldMappingRegistry
from core.observability.logging import get_logger, with_correlation
from core.provisioning import LinkingError, ProvisioningResult, SchemaProvisioner
from core.schema import CONTENT_ENGINE_SCHEMA
from core.storage import TERMINAL_STATUSES, JobStatus, TenantConfigStore
from workflows.tenant_provisioning_workflow import (
    TASK_QUEUE,
    TenantProvisioningInput,
    TenantProvisioningWorkflow,
    workflow_id_for,
)

logger = get_logger(__name__)

router = APIRouter()


class ProvisionRequest(BaseModel):
    """Request to provision a tenant."""
    tenant_name: Optional[str] = Field(None, description="Display name for the remote workspace")


class ProvisionAccepted(BaseModel):
    """Provisioning job accepted."""
    job_id: str
    tenant_id: str
    status: str


class TableSummary(BaseModel):
    """Remote ids for one tenant table."""
    table_key: str
    table_id: int
    fields: int


class TenantSummary(BaseModel):
    """Provisioned tenant (the database token is never returned)."""
    tenant_id: str
    schema_version: str
    database_id: Optional[int]
    links_established: bool
    tables: List[TableSummary] = Field(default_factory=list)


class ProvisioningStatusResponse(BaseModel):
    """Provisioning job status for polling."""
    job_id: str
    tenant_id: str
    status: str
    done: bool
    error: Optional[Dict[str, Any]] = None
    created_at: str
    updated_at: str
    tenant: Optional[TenantSummary] = None


def _summarize(result: ProvisioningResult) -> TenantSummary:
    return TenantSummary(
        tenant_id=result.tenant_id,
        schema_version=result.schema_version,
        database_id=result.database_id,
        links_established=result.links_established,
        tables=[
            TableSummary(table_key=t.table_key, table_id=t.table_id, fields=len(t.field_ids))
            for t in result.tables.values()
        ],
    )


@router.post("/{tenant_id}/provision", response_model=ProvisionAccepted, status_code=202)
async def provision_tenant(
    tenant_id: str,
    request: ProvisionRequest,
    store: TenantConfigStore = Depends(get_store),
    temporal: Client = Depends(get_temporal),
) -> ProvisionAccepted:
    """Start provisioning a tenant's schema.

    Returns 409 if the tenant is already provisioned, a job is running, or
    the last job left orphaned resources that have not been acknowledged.
    """
    if store.get_result(tenant_id) is not None:
        raise HTTPException(status_code=409, detail=f"Tenant '{tenant_id}' is already provisioned")

    latest = store.latest_job(tenant_id)
    if latest and JobStatus(latest["status"]) not in TERMINAL_STATUSES:
        raise HTTPException(
            status_code=409,
            detail=f"Provisioning job {latest['job_id']} is still {latest['status']}",
        )
    if latest and latest["status"] == JobStatus.ROLLBACK_FAILED.value:
        raise HTTPException(
            status_code=409,
            detail={
                "message": "Previous attempt left orphaned resources; clean them up and "
                           f"acknowledge with POST /tenants/{tenant_id}/provisioning/acknowledge",
                "job_id": latest["job_id"],
                "error": latest["error"],
            },
        )

    workflow_id = workflow_id_for(tenant_id)
    job_id = f"{workflow_id}-{uuid.uuid4().hex[:8]}"
    try:
        job = store.create_job(job_id, tenant_id)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail=f"A provisioning job for '{tenant_id}' is already open")

    with with_correlation(tenant_id=tenant_id, workflow_id=workflow_id):
        try:
            await temporal.start_workflow(
                TenantProvisioningWorkflow.run,
                TenantProvisioningInput(tenant_id=tenant_id, tenant_name=request.tenant_name, job_id=job_id),
                id=workflow_id,
                task_queue=TASK_QUEUE,
                id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
            )
        except WorkflowAlreadyStartedError:
            store.delete_job(job_id)
            raise HTTPException(status_code=409, detail=f"Workflow {workflow_id} is already running")
        except Exception as e:
            store.update_job(job_id, JobStatus.FAILED, {"error": type(e).__name__, "message": str(e)})
            logger.error(f"Could not start provisioning workflow: {e}")
            raise HTTPException(status_code=503, detail="Workflow service unavailable")

        logger.info("Provisioning workflow started", extra_fields={"job_id": job_id})

    return ProvisionAccepted(job_id=job_id, tenant_id=tenant_id, status=job["status"])


@router.post("/{tenant_id}/provisioning/acknowledge", response_model=ProvisioningStatusResponse)
async def acknowledge_rollback_failure(
    tenant_id: str,
    store: TenantConfigStore = Depends(get_store),
) -> ProvisioningStatusResponse:
    """Clear a ROLLBACK_FAILED job once its orphans have been removed by hand.

    The job becomes FAILED (its error keeps the orphan list) and the tenant
    can be provisioned again.
    """
    job = store.latest_job(tenant_id)
    if job is None or job["status"] != JobStatus.ROLLBACK_FAILED.value:
        raise HTTPException(status_code=409, detail=f"No unacknowledged rollback failure for '{tenant_id}'")

    error = {**(job["error"] or {}), "acknowledged": True}
    store.update_job(job["job_id"], JobStatus.FAILED, error)
    logger.warning(
        f"Rollback failure acknowledged for tenant {tenant_id}",
        extra_fields={"job_id": job["job_id"]},
    )
    return await get_provisioning_status(tenant_id, store)


@router.get("/{tenant_id}/provisioning", response_model=ProvisioningStatusResponse)
async def get_provisioning_status(
    tenant_id: str,
    store: TenantConfigStore = Depends(get_store),
) -> ProvisioningStatusResponse:
    """Poll the latest provisioning job for a tenant."""
    job = store.latest_job(tenant_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"No provisioning job for tenant '{tenant_id}'")

    result = store.get_result(tenant_id)
    return ProvisioningStatusResponse(
        job_id=job["job_id"],
        tenant_id=tenant_id,
        status=job["status"],
        done=JobStatus(job["status"]) in TERMINAL_STATUSES,
        error=job["error"],
        created_at=job["created_at"],
        updated_at=job["updated_at"],
        tenant=_summarize(result) if result else None,
    )


@router.post("/{tenant_id}/link", response_model=TenantSummary)
async def link_tenant(
    tenant_id: str,
    store: TenantConfigStore = Depends(get_store),
    registry: FieldMappingRegistry = Depends(get_registry),
    provisioner: SchemaProvisioner = Depends(get_provisioner),
) -> TenantSummary:
    """Re-run the linking phase for a provisioned tenant.

    Links already established are skipped. Progress is saved even when a
    link fails (502), so the call can simply be repeated.
    """
    result = store.get_result(tenant_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Tenant '{tenant_id}' is not provisioned")

    try:
        linked = await provisioner.link(result)
    except LinkingError as e:
        if e.result is not None:
            store.save_result(e.result)
        raise HTTPException(
            status_code=502,
            detail={"message": str(e), "failed_at": e.failed_at.to_dict()},
        )

    store.save_result(linked)
    registry.register_result(linked, provisioner.schema)
    return _summarize(linked)


@router.get("/{tenant_id}/field-map")
async def get_field_map(
    tenant_id: str,
    store: TenantConfigStore = Depends(get_store),
    registry: FieldMappingRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Semantic key -> remote field id map for every tenant table.

    Rebuilt whenever the stored result changes, so reverse link fields show
    up as soon as linking has been saved.
    """
    result = store.get_result(tenant_id)
    if result is not None:
        tenant_map = registry.sync_result(result, CONTENT_ENGINE_SCHEMA)
    elif registry.has_tenant(tenant_id):
        tenant_map = registry.for_tenant(tenant_id)
    else:
        raise HTTPException(status_code=404, detail=f"No field mapping for tenant '{tenant_id}'")

    return tenant_map.to_dict()
