"""Worker for tenant provisioning.

Connects to Temporal, builds the Baserow token manager, client and
provisioner, and serves TenantProvisioningWorkflow plus its activities on the
tenant-provisioning task queue.

Run with --queue <name> to poll a different task queue.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.provision import ProvisioningActivities
from connectors.baserow import BaserowApiClient, TokenLifecycleManager
from core.config import BaserowSettings
from core.observability.logging import configure_logging, get_logger
from core.provisioning import SchemaProvisioner
from core.storage import TenantConfigStore
from temporal_client import get_temporal_client
from workflows.tenant_provisioning_workflow import TASK_QUEUE, TenantProvisioningWorkflow

logger = get_logger(__name__)


async def run_worker(queue: str = TASK_QUEUE):
    """Start a worker listening on the task queue.

    Args:
        queue: Task queue to poll

    Raises:
        ConfigurationError: Baserow or Temporal configuration missing
    """
    settings = BaserowSettings.from_env()
    settings.validate()

    store = TenantConfigStore()
    store.init_db()

    token_manager = TokenLifecycleManager(settings)

    try:
        temporal = await get_temporal_client()
        logger.info(f"Connected to Temporal: {temporal.namespace}")

        async with BaserowApiClient(token_manager, settings) as baserow:
            provisioner = SchemaProvisioner(baserow, token_manager, workspace_id=settings.workspace_id)
            activities = ProvisioningActivities(provisioner, store)

            worker = Worker(
                temporal,
                task_queue=queue,
                workflows=[TenantProvisioningWorkflow],
                activities=[
                    activities.provision_schema,
                    activities.persist_tenant_config,
                    activities.discard_schema,
                    activities.link_schema,
                    activities.update_job_status,
                ],
            )
            logger.info(f"Worker running on queue '{queue}'... (Ctrl+C to stop)")
            await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise
    finally:
        await token_manager.close()
        logger.info("Baserow sessions closed")


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Tenant Provisioning Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=TASK_QUEUE,
        help=f"Task queue to poll (default: {TASK_QUEUE})"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON logs"
    )

    args = parser.parse_args()
    configure_logging(json_format=args.json_logs)
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
