"""Tenant Provisioning Workflow

Durable onboarding job for one tenant:
PROVISIONING → (persist tenant config) → LINKING → COMPLETED

Creation failures end the job as FAILED (rolled back) or ROLLBACK_FAILED
(orphans listed in the error). If the created schema cannot be stored, it is
discarded again: FAILED when every table was deleted, ROLLBACK_FAILED
otherwise. A linking failure ends it as LINK_FAILED with the tenant's tables
and configuration in place; linking can be re-run with
POST /tenants/{tenant_id}/link.

The workflow id is ``tenant-provisioning-{tenant_id}``, so Temporal refuses a
second run for a tenant while one is open. The current status is exposed
through the ``status`` query and mirrored into the job record for HTTP
polling.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ApplicationError

with workflow.unsafe.imports_passed_through():
    from activities.provision import (
        DiscardSchemaInput,
        LinkSchemaInput,
        PersistTenantConfigInput,
        ProvisionSchemaInput,
        ProvisioningActivities,
        UpdateJobStatusInput,
    )
    from core.storage.tenant_store import JobStatus


TASK_QUEUE = "tenant-provisioning"


def workflow_id_for(tenant_id: str) -> str:
    """Workflow id shared by every provisioning run of a tenant."""
    return f"tenant-provisioning-{tenant_id}"


@dataclass
class TenantProvisioningInput:
    """Input for TenantProvisioningWorkflow.

    Attributes:
        tenant_id: Tenant to onboard
        tenant_name: Display name for the remote workspace/database
        job_id: Job record id (defaults to the workflow run id)
    """
    tenant_id: str
    tenant_name: Optional[str] = None
    job_id: Optional[str] = None


# Creation is not idempotent: a second attempt would build a second schema
PROVISION_RETRY_POLICY = RetryPolicy(
    maximum_attempts=1,
    non_retryable_error_types=[
        "ProvisioningError",
        "RollbackError",
        "AuthError",
        "ConfigurationError",
        "ProvisioningInProgressError",
    ],
)

# Deleting an already deleted table fails, so an incomplete discard is final
DISCARD_RETRY_POLICY = RetryPolicy(
    maximum_attempts=2,
    initial_interval=timedelta(seconds=5),
    non_retryable_error_types=["RollbackError", "AuthError", "ConfigurationError"],
)

LINK_RETRY_POLICY = RetryPolicy(
    maximum_attempts=5,
    initial_interval=timedelta(seconds=2),
    maximum_interval=timedelta(minutes=1),
    backoff_coefficient=2.0,
    non_retryable_error_types=["AuthError", "ConfigurationError"],
)

DB_RETRY_POLICY = RetryPolicy(
    maximum_attempts=3,
    initial_interval=timedelta(seconds=1),
    backoff_coefficient=2.0,
    non_retryable_error_types=["IntegrityError"],
)

# Status writes retry until the store is back; a job never stays non-terminal
STATUS_RETRY_POLICY = RetryPolicy(
    maximum_attempts=0,
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(minutes=1),
    backoff_coefficient=2.0,
    non_retryable_error_types=["IntegrityError"],
)

PROVISION_TIMEOUT = timedelta(minutes=30)
PROVISION_HEARTBEAT_TIMEOUT = timedelta(minutes=5)


def _error_details(e: ActivityError) -> Dict[str, Any]:
    """Structured error carried by a failed activity."""
    cause = e.cause
    if isinstance(cause, ApplicationError):
        if cause.details and isinstance(cause.details[0], dict):
            return cause.details[0]
        return {"error": cause.type or "ApplicationError", "message": cause.message}
    return {"error": type(cause).__name__ if cause else "ActivityError", "message": str(cause or e)}


@workflow.defn
class TenantProvisioningWorkflow:
    """Provision a tenant's schema, persist it, then link it."""

    def __init__(self):
        self._status = JobStatus.PENDING
        self._error: Optional[Dict[str, Any]] = None
        self._tenant_id: Optional[str] = None
        self._tables = 0

    @workflow.query
    def status(self) -> dict:
        return {
            "tenant_id": self._tenant_id,
            "status": self._status.value,
            "tables": self._tables,
            "error": self._error,
        }

    @workflow.run
    async def run(self, input: TenantProvisioningInput) -> dict:
        """Execute the provisioning job.

        Returns:
            dict with tenant_id, job_id, status, table count, linking flag and error
        """
        self._tenant_id = input.tenant_id
        job_id = input.job_id or workflow.info().run_id
        workflow.logger.info(f"Starting tenant provisioning for {input.tenant_id}")

        await self._set_status(job_id, JobStatus.PROVISIONING)

        try:
            result = await workflow.execute_activity_method(
                ProvisioningActivities.provision_schema,
                ProvisionSchemaInput(tenant_id=input.tenant_id, tenant_name=input.tenant_name),
                start_to_close_timeout=PROVISION_TIMEOUT,
                heartbeat_timeout=PROVISION_HEARTBEAT_TIMEOUT,
                retry_policy=PROVISION_RETRY_POLICY,
            )
        except ActivityError as e:
            self._error = _error_details(e)
            failed = (
                JobStatus.ROLLBACK_FAILED
                if self._error.get("error") == "RollbackError"
                else JobStatus.FAILED
            )
            workflow.logger.error(f"Provisioning failed for {input.tenant_id}: {self._error}")
            await self._set_status(job_id, failed)
            return self._output(job_id)

        self._tables = len(result.get("tables", {}))

        try:
            await workflow.execute_activity_method(
                ProvisioningActivities.persist_tenant_config,
                PersistTenantConfigInput(result=result),
                start_to_close_timeout=timedelta(seconds=30),
                retry_policy=DB_RETRY_POLICY,
            )
        except ActivityError as e:
            self._error = {**_error_details(e), "stage": "persist"}
            workflow.logger.error(f"Could not store configuration for {input.tenant_id}: {self._error}")
            return await self._discard(job_id, result)

        await self._set_status(job_id, JobStatus.LINKING)

        try:
            result = await workflow.execute_activity_method(
                ProvisioningActivities.link_schema,
                LinkSchemaInput(result=result),
                start_to_close_timeout=timedelta(minutes=5),
                retry_policy=LINK_RETRY_POLICY,
            )
        except ActivityError as e:
            self._error = _error_details(e)
            workflow.logger.error(f"Linking failed for {input.tenant_id}: {self._error}")
            await self._set_status(job_id, JobStatus.LINK_FAILED)
            return self._output(job_id)

        await self._set_status(job_id, JobStatus.COMPLETED)
        workflow.logger.info(f"Tenant {input.tenant_id} provisioned with {self._tables} tables")
        return self._output(job_id, links_established=result.get("links_established", False))

    async def _discard(self, job_id: str, result: dict) -> dict:
        """Remove a created schema whose configuration was not stored."""
        persist_error = self._error
        try:
            discarded = await workflow.execute_activity_method(
                ProvisioningActivities.discard_schema,
                DiscardSchemaInput(result=result, reason=persist_error.get("message", "configuration not stored")),
                start_to_close_timeout=timedelta(minutes=10),
                retry_policy=DISCARD_RETRY_POLICY,
            )
        except ActivityError as e:
            self._error = {**_error_details(e), "persist_error": persist_error}
            workflow.logger.error(f"Discard incomplete for {self._tenant_id}: {self._error}")
            await self._set_status(job_id, JobStatus.ROLLBACK_FAILED)
            return self._output(job_id)

        self._error = {**persist_error, "cleaned_table_ids": discarded["cleaned_table_ids"]}
        await self._set_status(job_id, JobStatus.FAILED)
        return self._output(job_id)

    async def _set_status(self, job_id: str, status: JobStatus) -> None:
        self._status = status
        await workflow.execute_activity_method(
            ProvisioningActivities.update_job_status,
            UpdateJobStatusInput(
                job_id=job_id,
                tenant_id=self._tenant_id,
                status=status.value,
                error=self._error,
            ),
            start_to_close_timeout=timedelta(seconds=30),
            retry_policy=STATUS_RETRY_POLICY,
        )

    def _output(self, job_id: str, links_established: bool = False) -> dict:
        return {
            "tenant_id": self._tenant_id,
            "job_id": job_id,
            "status": self._status.value,
            "tables": self._tables,
            "links_established": links_established,
            "error": self._error,
        }
