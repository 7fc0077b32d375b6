"""Start a TenantProvisioningWorkflow and wait for it.

Usage:
    python scripts/start_provisioning.py acme --name "Acme Coffee"
"""

import asyncio
import sys
from pathlib import Path
import uuid

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporalio.common import WorkflowIDReusePolicy

from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.tenant_provisioning_workflow import (
    TASK_QUEUE,
    TenantProvisioningInput,
    TenantProvisioningWorkflow,
    workflow_id_for,
)

logger = get_logger(__name__)


async def start_provisioning(tenant_id: str, tenant_name: str = None) -> dict:
    """Start provisioning for a tenant and return the workflow result."""
    workflow_id = workflow_id_for(tenant_id)
    job_id = f"{workflow_id}-{uuid.uuid4().hex[:8]}"

    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    handle = await client.start_workflow(
        TenantProvisioningWorkflow.run,
        TenantProvisioningInput(tenant_id=tenant_id, tenant_name=tenant_name, job_id=job_id),
        task_queue=TASK_QUEUE,
        id=workflow_id,
        id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
    )
    logger.info(f"Workflow started: {handle.id}")

    return await handle.result()


def main():
    """Entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Provision a tenant schema")
    parser.add_argument("tenant_id", help="Tenant identifier")
    parser.add_argument("--name", default=None, help="Display name for the remote workspace")
    args = parser.parse_args()

    configure_logging()
    try:
        result = asyncio.run(start_provisioning(args.tenant_id, args.name))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n=== PROVISIONING RESULT ===")
    for key, value in result.items():
        print(f"  {key}: {value}")
    print("===========================\n")
    return 0 if result.get("status") == "COMPLETED" else 1


if __name__ == "__main__":
    sys.exit(main())
