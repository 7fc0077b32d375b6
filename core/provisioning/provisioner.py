"""Schema provisioning.

Creates a tenant's complete remote schema in dependency order:

    container (workspace + database)
      -> tables, in declared order
         -> primary field conversion, default field cleanup
         -> declared fields, in declared order
      -> per-tenant database token
    linking phase (two-way relations, separate and re-runnable)

The creation phase is all-or-nothing. Any failure stops it immediately and
every table created by the attempt is deleted, most recent first, before the
failure is raised. The linking phase has no rollback; it is idempotent and
can be repeated with ``link(result)`` until it succeeds.

A created schema that cannot be kept (its result could not be recorded) is
removed with ``discard(result, reason)``, using the same cleanup order.

Usage:
    provisioner = SchemaProvisioner(client, token_manager)
    result = await provisioner.provision("acme", tenant_name="Acme Coffee")
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from connectors.baserow.auth import TokenLifecycleManager
from connectors.baserow.client import BaserowApiClient, BaserowApiError
from core.observability.logging import get_logger, with_correlation
from core.provisioning.errors import (
    FailurePoint,
    LinkingError,
    ProvisioningError,
    ProvisioningInProgressError,
    RollbackError,
)
from core.provisioning.models import (
    ProvisioningResult,
    TableProvisioningResult,
    TenantWorkspace,
)
from core.schema import CONTENT_ENGINE_SCHEMA, FieldSpec, SchemaDefinition, TableSpec

logger = get_logger(__name__)


def _select_option_ids(field: Dict[str, Any]) -> Dict[str, int]:
    return {
        option["value"]: option["id"]
        for option in field.get("select_options") or []
        if "id" in option and "value" in option
    }


class SchemaProvisioner:
    """Provisions tenant schemas against the remote backend.

    One provisioner may serve many tenants concurrently; each attempt owns
    its own rollback set. A second concurrent attempt for the same tenant
    raises ProvisioningInProgressError.
    """

    def __init__(
        self,
        client: BaserowApiClient,
        token_manager: TokenLifecycleManager,
        schema: SchemaDefinition = CONTENT_ENGINE_SCHEMA,
        workspace_id: Optional[int] = None,
    ):
        """Initialize the provisioner.

        Args:
            client: Connected Baserow client
            token_manager: Admin credential source (shared with the client)
            schema: Schema to apply
            workspace_id: Existing workspace to create tenant databases in;
                when None a workspace is created per tenant
        """
        self.client = client
        self.token_manager = token_manager
        self.schema = schema
        self.workspace_id = workspace_id
        self._attempts: Dict[str, asyncio.Task] = {}

    def is_provisioning(self, tenant_id: str) -> bool:
        return tenant_id in self._attempts

    async def provision(
        self,
        tenant_id: str,
        tenant_name: Optional[str] = None,
        establish_links: bool = True,
        progress: Optional[Callable[[FailurePoint], None]] = None,
    ) -> ProvisioningResult:
        """Create the tenant's schema, then (optionally) run the linking phase.

        The attempt runs in its own task: cancelling the caller does not stop
        it halfway, it still finishes or rolls back.

        Args:
            tenant_id: Tenant identifier
            tenant_name: Display name for the remote workspace/database
            establish_links: Run the linking phase after creation
            progress: Called with each creation step as it starts

        Returns:
            ProvisioningResult with every table, field and option id

        Raises:
            ConfigurationError: Admin configuration missing (nothing created)
            AuthError: Credential rejected (nothing created)
            ProvisioningInProgressError: Tenant already being provisioned
            ProvisioningError: Creation failed, created tables were removed
            RollbackError: Creation failed and cleanup was incomplete
            LinkingError: Tables exist, linking must be re-run
        """
        if tenant_id in self._attempts:
            raise ProvisioningInProgressError(tenant_id)

        task = asyncio.ensure_future(self._run(tenant_id, tenant_name or tenant_id, establish_links, progress))
        self._attempts[tenant_id] = task
        task.add_done_callback(lambda t: self._finish_attempt(tenant_id, t))
        return await asyncio.shield(task)

    def _finish_attempt(self, tenant_id: str, task: asyncio.Task) -> None:
        if self._attempts.get(tenant_id) is task:
            del self._attempts[tenant_id]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(
                f"Provisioning attempt for {tenant_id} ended with {type(task.exception()).__name__}"
            )

    async def _run(
        self,
        tenant_id: str,
        tenant_name: str,
        establish_links: bool,
        progress: Optional[Callable[[FailurePoint], None]],
    ) -> ProvisioningResult:
        with with_correlation(tenant_id=tenant_id):
            # Authentication failures abort before anything is created
            await self.token_manager.get_valid_token()

            result = await self._create(tenant_id, tenant_name, progress)
            logger.info(
                f"Created {len(result.tables)} tables for tenant {tenant_id}",
                extra_fields={"database_id": result.database_id, "schema_version": result.schema_version},
            )

            if establish_links:
                result = await self.link(result)
            return result

    # =========================================================================
    # Creation phase
    # =========================================================================

    async def _create(
        self,
        tenant_id: str,
        tenant_name: str,
        progress: Optional[Callable[[FailurePoint], None]] = None,
    ) -> ProvisioningResult:
        workspace = TenantWorkspace(tenant_id=tenant_id)
        result = ProvisioningResult(tenant_id=tenant_id, schema_version=self.schema.version)

        def reached(point: FailurePoint) -> FailurePoint:
            if progress is not None:
                progress(point)
            return point

        failed_at = reached(FailurePoint(stage="workspace"))

        try:
            if self.workspace_id is not None:
                workspace.workspace_id = self.workspace_id
            else:
                created = await self.client.create_workspace(tenant_name)
                workspace.workspace_id = created["id"]
                workspace.created_workspace = True
            result.workspace_id = workspace.workspace_id
            result.created_workspace = workspace.created_workspace

            failed_at = reached(FailurePoint(stage="database"))
            created = await self.client.create_database(workspace.workspace_id, tenant_name)
            workspace.database_id = created["id"]
            workspace.created_database = True
            result.database_id = workspace.database_id

            for table_index, table in enumerate(self.schema, start=1):
                with with_correlation(stage="table", table_key=table.key):
                    failed_at = reached(FailurePoint(stage="table", table_key=table.key, table_index=table_index))
                    created = await self.client.create_table(workspace.database_id, table.name)
                    table_id = created["id"]
                    workspace.record_table(table_id)

                    table_result = TableProvisioningResult(
                        table_key=table.key,
                        table_name=table.name,
                        table_id=table_id,
                    )
                    result.tables[table.key] = table_result
                    logger.info(f"Created table {table.name}", extra_fields={"table_id": table_id})

                    failed_at = FailurePoint(stage="primary_field", table_key=table.key, table_index=table_index)
                    await self._convert_default_fields(table, table_result)

                    for field_index, spec in enumerate(table.fields, start=1):
                        failed_at = reached(FailurePoint(
                            stage="field",
                            table_key=table.key,
                            table_index=table_index,
                            field_name=spec.name,
                            field_index=field_index,
                        ))
                        await self._create_field(spec, table_result, result)

            failed_at = reached(FailurePoint(stage="database_token"))
            token = await self.client.create_database_token(workspace.workspace_id, f"{tenant_name} CRUD")
            result.database_token = token["key"]

        except Exception as e:
            logger.error(f"Provisioning failed at {failed_at}: {e}")
            await self._rollback(workspace, failed_at, e, result)

        result.provisioned_at = datetime.now(timezone.utc)
        return result

    async def _convert_default_fields(self, table: TableSpec, table_result: TableProvisioningResult) -> None:
        """Turn the backend's default primary field into the declared one.

        New tables come with a primary "Name" field plus default fields;
        the primary is updated in place and the rest are removed.
        """
        existing = await self.client.list_fields(table_result.table_id)
        primary = next((f for f in existing if f.get("primary")), None)
        if primary is None:
            raise BaserowApiError(f"Table '{table.name}' has no primary field")

        updated = await self.client.update_field(primary["id"], table.primary.to_payload())
        table_result.primary_field_id = primary["id"]
        table_result.field_ids[table.primary.name] = primary["id"]
        options = _select_option_ids(updated)
        if options:
            table_result.select_options[table.primary.name] = options

        for default_field in existing:
            if not default_field.get("primary"):
                await self.client.delete_field(default_field["id"])

    async def _create_field(
        self,
        spec: FieldSpec,
        table_result: TableProvisioningResult,
        result: ProvisioningResult,
    ) -> None:
        link_table_id = result.get_table(spec.link_target).table_id if spec.is_link else None
        created = await self.client.create_field(table_result.table_id, spec.to_payload(link_table_id))
        table_result.field_ids[spec.name] = created["id"]
        options = _select_option_ids(created)
        if options:
            table_result.select_options[spec.name] = options
        logger.debug(f"Created field {spec.name}", extra_fields={"field_id": created["id"]})

    async def _cleanup(self, workspace: TenantWorkspace) -> Tuple[List[int], List[int], Optional[int]]:
        """Delete the workspace's recorded tables, most recent first, then its container.

        The container is only removed when every table is gone, and only if it
        was created for the tenant. Returns (cleaned, orphaned, orphaned_database_id).
        """
        cleaned = []
        orphaned = []
        with with_correlation(stage="rollback"):
            for table_id in workspace.rollback_order():
                try:
                    await self.client.delete_table(table_id)
                    cleaned.append(table_id)
                except Exception as delete_error:
                    logger.error(f"Rollback could not delete table {table_id}: {delete_error}")
                    orphaned.append(table_id)

            orphaned_database_id = None
            if workspace.created_workspace or workspace.created_database:
                container_left = bool(orphaned)
                if not container_left:
                    try:
                        # Deleting the workspace removes its databases too
                        if workspace.created_workspace:
                            await self.client.delete_workspace(workspace.workspace_id)
                        else:
                            await self.client.delete_database(workspace.database_id)
                    except Exception as delete_error:
                        logger.error(f"Rollback could not delete tenant container: {delete_error}")
                        container_left = True
                if container_left:
                    orphaned_database_id = workspace.database_id

        return cleaned, orphaned, orphaned_database_id

    async def _rollback(
        self,
        workspace: TenantWorkspace,
        failed_at: FailurePoint,
        error: Exception,
        partial: ProvisioningResult,
    ) -> None:
        """Delete what this attempt created, then raise.

        Always raises: ProvisioningError if cleanup completed, RollbackError
        if anything was left behind.
        """
        cleaned, orphaned, orphaned_database_id = await self._cleanup(workspace)

        if orphaned or orphaned_database_id is not None:
            logger.error(
                f"Rollback incomplete for tenant {workspace.tenant_id}",
                extra_fields={"orphaned_table_ids": orphaned, "orphaned_database_id": orphaned_database_id},
            )
            raise RollbackError(
                f"Provisioning failed at {failed_at} and rollback left "
                f"{len(orphaned)} table(s) behind: {error}",
                tenant_id=workspace.tenant_id,
                orphaned_table_ids=orphaned,
                original=error,
                cleaned_table_ids=cleaned,
                failed_at=failed_at,
                orphaned_database_id=orphaned_database_id,
            ) from error

        logger.info(
            f"Rolled back {len(cleaned)} table(s) for tenant {workspace.tenant_id}",
            extra_fields={"cleaned_table_ids": cleaned},
        )
        raise ProvisioningError(
            f"Provisioning failed at {failed_at}: {error}",
            tenant_id=workspace.tenant_id,
            failed_at=failed_at,
            partial_result=partial,
            cleaned_table_ids=cleaned,
            cause=error,
        ) from error

    async def discard(self, result: ProvisioningResult, reason: str) -> List[int]:
        """Delete a schema that was created but could not be kept.

        Used when the creation phase succeeded but its result could not be
        recorded. Tables go in reverse creation order, then the database (or
        the workspace, if it was created for the tenant).

        Args:
            result: Result returned by provision()
            reason: Why the schema is being discarded

        Returns:
            Deleted table ids, in deletion order

        Raises:
            RollbackError: Some tables (or the container) could not be deleted
        """
        workspace = TenantWorkspace(
            tenant_id=result.tenant_id,
            workspace_id=result.workspace_id,
            database_id=result.database_id,
            created_workspace=result.created_workspace,
            created_database=result.database_id is not None,
            created_table_ids=list(result.table_ids),
        )
        with with_correlation(tenant_id=result.tenant_id):
            cleaned, orphaned, orphaned_database_id = await self._cleanup(workspace)

        if orphaned or orphaned_database_id is not None:
            logger.error(
                f"Discard incomplete for tenant {result.tenant_id}",
                extra_fields={"orphaned_table_ids": orphaned, "orphaned_database_id": orphaned_database_id},
            )
            raise RollbackError(
                f"Discarding tenant schema left {len(orphaned)} table(s) behind: {reason}",
                tenant_id=result.tenant_id,
                orphaned_table_ids=orphaned,
                original=None,
                cleaned_table_ids=cleaned,
                orphaned_database_id=orphaned_database_id,
            )

        logger.info(
            f"Discarded {len(cleaned)} table(s) for tenant {result.tenant_id}: {reason}",
            extra_fields={"cleaned_table_ids": cleaned},
        )
        return cleaned

    # =========================================================================
    # Linking phase
    # =========================================================================

    async def link(self, result: ProvisioningResult) -> ProvisioningResult:
        """Turn every link field into a two-way relation.

        Safe to call repeatedly: links whose reverse field is already
        recorded are skipped. Works on a copy; the caller's result is not
        modified.

        Raises:
            LinkingError: A link could not be established. The returned
                ``result`` on the error holds the links completed so far.
        """
        result = result.model_copy(deep=True)

        with with_correlation(tenant_id=result.tenant_id, stage="link"):
            await self.token_manager.get_valid_token()

            table_positions = {key: i for i, key in enumerate(self.schema.table_keys, start=1)}
            for link in self.schema.links():
                table_spec = self.schema.get_table(link.table_key)
                field_index = next(
                    i for i, f in enumerate(table_spec.fields, start=1) if f.name == link.field_name
                )
                failed_at = FailurePoint(
                    stage="link",
                    table_key=link.table_key,
                    table_index=table_positions[link.table_key],
                    field_name=link.field_name,
                    field_index=field_index,
                )

                try:
                    table = result.get_table(link.table_key)
                    if link.field_name in table.related_field_ids:
                        continue
                    target = result.get_table(link.target_table_key)

                    updated = await self.client.update_field(
                        table.field_id(link.field_name),
                        {"link_row_table_id": target.table_id, "has_related_field": True},
                    )
                    related_id = updated.get("link_row_related_field_id") or updated.get("link_row_related_field")
                    if related_id is None:
                        raise LinkingError(
                            f"Backend did not create a reverse field for {link.table_key}.{link.field_name}",
                            tenant_id=result.tenant_id,
                            failed_at=failed_at,
                            result=result,
                        )

                    await self.client.update_field(related_id, {"name": link.related_field_name})
                    target.field_ids[link.related_field_name] = related_id
                    table.related_field_ids[link.field_name] = related_id
                    logger.info(
                        f"Linked {link.table_key}.{link.field_name} -> {link.target_table_key}",
                        extra_fields={"related_field_id": related_id},
                    )
                except LinkingError:
                    raise
                except Exception as e:
                    logger.error(f"Linking failed at {failed_at}: {e}")
                    raise LinkingError(
                        f"Linking failed at {failed_at}: {e}",
                        tenant_id=result.tenant_id,
                        failed_at=failed_at,
                        result=result,
                        cause=e,
                    ) from e

            result.links_established = True
            return result
