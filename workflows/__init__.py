"""Workflow definitions module."""

from workflows.tenant_provisioning_workflow import (
    TASK_QUEUE,
    TenantProvisioningInput,
    TenantProvisioningWorkflow,
    workflow_id_for,
)

__all__ = ["TASK_QUEUE", "TenantProvisioningInput", "TenantProvisioningWorkflow", "workflow_id_for"]
