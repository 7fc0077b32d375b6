"""Provisioning activities.

Activities are methods on ProvisioningActivities so the worker can hand them
a connected provisioner and a tenant store; nothing is held in module state.

Failures that must not be retried (rollback already happened, credentials
rejected, configuration missing) are raised as non-retryable
ApplicationErrors whose type is the original exception class name and whose
details carry the structured error.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from temporalio import activity
from temporalio.exceptions import ApplicationError

from connectors.baserow.auth import AuthError
from core.config import ConfigurationError
from core.observability.logging import (
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)
from core.provisioning import (
    LinkingError,
    ProvisioningError,
    ProvisioningInProgressError,
    ProvisioningResult,
    RollbackError,
    SchemaProvisioner,
)
from core.storage import JobStatus, TenantConfigStore


@dataclass
class ProvisionSchemaInput:
    """Input for provision_schema activity.

    Attributes:
        tenant_id: Tenant to provision
        tenant_name: Display name for the remote workspace/database
    """
    tenant_id: str
    tenant_name: Optional[str] = None


@dataclass
class PersistTenantConfigInput:
    """Input for persist_tenant_config activity (result as model_dump dict)."""
    result: Dict[str, Any]


@dataclass
class DiscardSchemaInput:
    """Input for discard_schema activity.

    Attributes:
        result: ProvisioningResult as a model_dump dict
        reason: Why the created schema is being removed
    """
    result: Dict[str, Any]
    reason: str


@dataclass
class LinkSchemaInput:
    """Input for link_schema activity (result as model_dump dict)."""
    result: Dict[str, Any]


@dataclass
class UpdateJobStatusInput:
    """Input for update_job_status activity.

    Attributes:
        job_id: Provisioning job record id
        tenant_id: Tenant the job belongs to
        status: New JobStatus value
        error: Structured error for failed jobs
    """
    job_id: str
    tenant_id: str
    status: str
    error: Optional[Dict[str, Any]] = None


def _non_retryable(e: Exception, details: Dict[str, Any]) -> ApplicationError:
    return ApplicationError(str(e), details, type=type(e).__name__, non_retryable=True)


class ProvisioningActivities:
    """Temporal activities bound to one provisioner and tenant store."""

    def __init__(self, provisioner: SchemaProvisioner, store: TenantConfigStore):
        self.provisioner = provisioner
        self.store = store

    @activity.defn
    async def provision_schema(self, input: ProvisionSchemaInput) -> dict:
        """Run the creation phase for a tenant.

        Heartbeats once per creation step with the step reached.

        Returns:
            ProvisioningResult as a JSON-compatible dict

        Raises:
            ApplicationError: non-retryable, typed ProvisioningError,
                RollbackError, AuthError, ConfigurationError or
                ProvisioningInProgressError
        """
        log_activity_start("provision_schema", tenant_id=input.tenant_id)
        with with_correlation(tenant_id=input.tenant_id, activity_name="provision_schema"):
            try:
                result = await self.provisioner.provision(
                    input.tenant_id,
                    tenant_name=input.tenant_name,
                    establish_links=False,
                    progress=lambda point: activity.heartbeat(point.to_dict()),
                )
            except (ProvisioningError, RollbackError) as e:
                log_activity_error("provision_schema", str(e), tenant_id=input.tenant_id)
                raise _non_retryable(e, e.to_dict()) from e
            except (AuthError, ConfigurationError, ProvisioningInProgressError) as e:
                log_activity_error("provision_schema", str(e), tenant_id=input.tenant_id)
                raise _non_retryable(e, {"error": type(e).__name__, "message": str(e)}) from e

        log_activity_complete("provision_schema", tenant_id=input.tenant_id, tables=len(result.tables))
        return result.model_dump(mode="json")

    @activity.defn
    async def persist_tenant_config(self, input: PersistTenantConfigInput) -> dict:
        """Store the provisioning result atomically in the tenant store."""
        result = ProvisioningResult.model_validate(input.result)
        activity.logger.info(f"Persisting tenant configuration for {result.tenant_id}")
        self.store.init_db()
        self.store.save_result(result)
        return {"tenant_id": result.tenant_id, "tables": len(result.tables)}

    @activity.defn
    async def link_schema(self, input: LinkSchemaInput) -> dict:
        """Run the linking phase and persist its progress.

        Progress is saved even when linking fails, so a retry only redoes
        the links that are still missing.
        """
        result = ProvisioningResult.model_validate(input.result)
        log_activity_start("link_schema", tenant_id=result.tenant_id)
        self.store.init_db()

        with with_correlation(tenant_id=result.tenant_id, activity_name="link_schema"):
            try:
                linked = await self.provisioner.link(result)
            except LinkingError as e:
                if e.result is not None:
                    self.store.save_result(e.result)
                log_activity_error("link_schema", str(e), tenant_id=result.tenant_id)
                raise
            except (AuthError, ConfigurationError) as e:
                raise _non_retryable(e, {"error": type(e).__name__, "message": str(e)}) from e

        self.store.save_result(linked)
        log_activity_complete("link_schema", tenant_id=result.tenant_id)
        return linked.model_dump(mode="json")

    @activity.defn
    async def discard_schema(self, input: DiscardSchemaInput) -> dict:
        """Delete a created schema whose configuration could not be stored.

        Raises:
            ApplicationError: non-retryable RollbackError listing what is left
        """
        result = ProvisioningResult.model_validate(input.result)
        log_activity_start("discard_schema", tenant_id=result.tenant_id, tables=len(result.tables))
        with with_correlation(tenant_id=result.tenant_id, activity_name="discard_schema"):
            try:
                cleaned = await self.provisioner.discard(result, input.reason)
            except RollbackError as e:
                log_activity_error("discard_schema", str(e), tenant_id=result.tenant_id)
                raise _non_retryable(e, e.to_dict()) from e

        log_activity_complete("discard_schema", tenant_id=result.tenant_id, cleaned=len(cleaned))
        return {"tenant_id": result.tenant_id, "cleaned_table_ids": cleaned}

    @activity.defn
    async def update_job_status(self, input: UpdateJobStatusInput) -> dict:
        """Mirror the workflow status into the job record polled over HTTP."""
        self.store.init_db()
        if self.store.get_job(input.job_id) is None:
            self.store.create_job(input.job_id, input.tenant_id)
        self.store.update_job(input.job_id, JobStatus(input.status), input.error)
        activity.logger.info(f"Job {input.job_id} -> {input.status}")
        return {"job_id": input.job_id, "status": input.status}
