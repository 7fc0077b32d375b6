"""
Schema Provisioner Tests

Validates all-or-nothing tenant provisioning against an in-memory backend:
1. Tables and fields are created in declared order, links point backwards
2. Any creation failure rolls back every created table, newest first
3. Incomplete rollback raises RollbackError (never ProvisioningError)
4. Linking failures leave tables in place and linking can be re-run
5. One attempt per tenant at a time; caller cancellation does not abandon it
6. A created schema that cannot be kept is discarded in the same order
"""

import asyncio

import pytest

from connectors.baserow import AuthError, BaserowApiError
from core.config import ConfigurationError
from core.provisioning import (
    LinkingError,
    ProvisioningError,
    ProvisioningInProgressError,
    RollbackError,
    SchemaProvisioner,
)
from core.schema import CONTENT_ENGINE_SCHEMA


def _table_id_for(fake_client, name):
    return fake_client.table_by_name(name)["id"]


class TestSuccessfulProvisioning:
    """Happy path: the whole content engine schema."""

    def test_creates_all_tables_in_declared_order(self, fake_client, token_manager):
        """Seven tables, in schema order, inside a fresh workspace and database."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        result = asyncio.run(provisioner.provision("acme", tenant_name="Acme Coffee"))

        created_names = [fake_client.tables[t]["name"] for t in fake_client.created_tables]
        assert created_names == [t.name for t in CONTENT_ENGINE_SCHEMA]
        assert list(result.tables) == CONTENT_ENGINE_SCHEMA.table_keys
        assert result.table_ids == fake_client.created_tables
        assert result.workspace_id in fake_client.workspaces
        assert result.database_id in fake_client.databases
        assert result.schema_version == CONTENT_ENGINE_SCHEMA.version
        assert result.provisioned_at.tzinfo is not None

    def test_fields_created_in_declared_order(self, fake_client, token_manager):
        """Primary first, default fields removed, then declared fields in order."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        asyncio.run(provisioner.provision("acme"))

        for table in CONTENT_ENGINE_SCHEMA:
            names = fake_client.field_names(_table_id_for(fake_client, table.name))
            declared = [f.name for f in table.all_fields()]
            # Reverse link fields are appended after the declared ones
            assert names[:len(declared)] == declared
            assert "Active" not in names

    def test_primary_field_converted(self, fake_client, token_manager):
        """The backend's default primary field becomes the declared primary."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        result = asyncio.run(provisioner.provision("acme"))

        content_ideas = result.get_table("content_ideas")
        primary = fake_client.fields[content_ideas.primary_field_id]
        assert primary["primary"] is True
        assert primary["name"] == "record_id"
        assert primary["type"] == "autonumber"

    def test_link_fields_point_at_earlier_tables(self, fake_client, token_manager):
        """Link fields carry the remote id of their (already created) target."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        result = asyncio.run(provisioner.provision("acme"))

        email = result.get_table("email_ideas")
        link_field = fake_client.fields[email.field_id("Templates")]
        assert link_field["link_row_table_id"] == result.get_table("templates").table_id

    def test_select_option_ids_recorded(self, fake_client, token_manager):
        """Option ids assigned by the backend are kept for the field mapping."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        result = asyncio.run(provisioner.provision("acme"))

        status_options = result.get_table("content_ideas").select_options["Status"]
        assert set(status_options) == {"Draft", "Approved", "Rejected", "In Review"}
        assert all(isinstance(option_id, int) for option_id in status_options.values())

    def test_database_token_created(self, fake_client, token_manager):
        """A per-tenant database token is created for CRUD access."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        result = asyncio.run(provisioner.provision("acme"))

        assert result.database_token == fake_client.tokens[0]["key"]

    def test_links_established(self, fake_client, token_manager):
        """Linking records one reverse field per link, named as declared."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        result = asyncio.run(provisioner.provision("acme"))

        assert result.links_established is True
        images = result.get_table("images")
        social = result.get_table("social_media_content")
        related_id = social.related_field_ids["Images"]
        assert fake_client.fields[related_id]["name"] == "Social Media Content"
        assert images.field_ids["Social Media Content"] == related_id
        total_links = sum(len(t.related_field_ids) for t in result.tables.values())
        assert total_links == len(CONTENT_ENGINE_SCHEMA.links())

    def test_existing_workspace_used(self, fake_client, token_manager):
        """With a configured workspace no workspace is created."""
        provisioner = SchemaProvisioner(fake_client, token_manager, workspace_id=42)

        result = asyncio.run(provisioner.provision("acme"))

        assert fake_client.count("create_workspace") == 0
        assert result.workspace_id == 42

    def test_token_checked_before_any_create(self, fake_client, token_manager):
        """A valid credential is obtained before the first remote mutation."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        asyncio.run(provisioner.provision("acme"))

        assert token_manager.get_valid_token.await_count >= 1


class TestRollback:
    """Creation failures roll back every created table."""

    def test_field_failure_in_fifth_table(self, fake_client, token_manager):
        """Table 5, field 3 fails: tables 5..1 deleted in that order, error says where."""
        social_name = CONTENT_ENGINE_SCHEMA.tables[4].name
        third_field = CONTENT_ENGINE_SCHEMA.tables[4].fields[2].name
        fake_client.fail_when(
            "create_field",
            lambda table_id, payload: (
                fake_client.tables[table_id]["name"] == social_name and payload["name"] == third_field
            ),
        )
        provisioner = SchemaProvisioner(fake_client, token_manager)

        with pytest.raises(ProvisioningError) as exc_info:
            asyncio.run(provisioner.provision("acme"))

        error = exc_info.value
        assert error.failed_at.stage == "field"
        assert error.failed_at.table_index == 5
        assert error.failed_at.table_key == "social_media_content"
        assert error.failed_at.field_index == 3
        assert error.failed_at.field_name == third_field

        assert len(fake_client.created_tables) == 5
        assert fake_client.deleted_tables == list(reversed(fake_client.created_tables))
        assert error.cleaned_table_ids == fake_client.deleted_tables
        assert fake_client.tables == {}
        assert fake_client.workspaces == {}
        assert isinstance(error.cause, BaserowApiError)
        assert error.partial_result is not None
        assert len(error.partial_result.tables) == 5

    def test_no_further_creates_after_failure(self, fake_client, token_manager):
        """Creation stops at the first failure."""
        fake_client.fail_when("create_table", lambda database_id, name: name == "Images")
        provisioner = SchemaProvisioner(fake_client, token_manager)

        with pytest.raises(ProvisioningError):
            asyncio.run(provisioner.provision("acme"))

        assert fake_client.count("create_table") == 3
        assert fake_client.count("create_database_token") == 0
        assert fake_client.deleted_tables == list(reversed(fake_client.created_tables))

    def test_token_failure_rolls_back(self, fake_client, token_manager):
        """Database token creation is part of the creation phase."""
        fake_client.fail_when("create_database_token")
        provisioner = SchemaProvisioner(fake_client, token_manager)

        with pytest.raises(ProvisioningError) as exc_info:
            asyncio.run(provisioner.provision("acme"))

        assert exc_info.value.failed_at.stage == "database_token"
        assert len(fake_client.deleted_tables) == len(CONTENT_ENGINE_SCHEMA)

    def test_configured_workspace_is_kept(self, fake_client, token_manager):
        """Rollback deletes only the database when the workspace was given."""
        fake_client.fail_when("create_table")
        provisioner = SchemaProvisioner(fake_client, token_manager, workspace_id=42)

        with pytest.raises(ProvisioningError):
            asyncio.run(provisioner.provision("acme"))

        assert fake_client.count("delete_workspace") == 0
        assert fake_client.count("delete_database") == 1
        assert fake_client.databases == {}

    def test_incomplete_rollback_raises_rollback_error(self, fake_client, token_manager):
        """A table that cannot be deleted is reported as orphaned."""
        fake_client.fail_when("create_table", lambda database_id, name: name == "Email Ideas")
        provisioner = SchemaProvisioner(fake_client, token_manager)

        async def scenario():
            # Images (third table) refuses deletion
            original_delete = fake_client.delete_table

            async def delete_table(table_id):
                if fake_client.tables[table_id]["name"] == "Images":
                    fake_client.calls.append(("delete_table", (table_id,)))
                    raise BaserowApiError("delete refused", 500)
                await original_delete(table_id)

            fake_client.delete_table = delete_table
            return await provisioner.provision("acme")

        with pytest.raises(RollbackError) as exc_info:
            asyncio.run(scenario())

        error = exc_info.value
        images_id = fake_client.table_by_name("Images")["id"]
        assert not isinstance(error, ProvisioningError)
        assert error.orphaned_table_ids == [images_id]
        assert len(error.cleaned_table_ids) == 2
        assert error.tenant_id == "acme"
        assert isinstance(error.original, BaserowApiError)
        # Container kept so the orphan stays reachable
        assert fake_client.count("delete_workspace") == 0
        assert error.orphaned_database_id is not None

    def test_auth_failure_creates_nothing(self, fake_client, token_manager):
        """AuthError aborts before any remote create."""
        token_manager.get_valid_token.side_effect = AuthError("bad credentials", 401)
        provisioner = SchemaProvisioner(fake_client, token_manager)

        with pytest.raises(AuthError):
            asyncio.run(provisioner.provision("acme"))

        assert fake_client.calls == []

    def test_configuration_error_creates_nothing(self, fake_client, token_manager):
        """Missing configuration is fatal before any remote call."""
        token_manager.get_valid_token.side_effect = ConfigurationError("missing", ("BASEROW_API_URL",))
        provisioner = SchemaProvisioner(fake_client, token_manager)

        with pytest.raises(ConfigurationError):
            asyncio.run(provisioner.provision("acme"))

        assert fake_client.calls == []


class TestDiscard:
    """Removing a created schema that could not be recorded."""

    def test_discard_removes_tables_newest_first(self, fake_client, token_manager):
        provisioner = SchemaProvisioner(fake_client, token_manager)
        result = asyncio.run(provisioner.provision("acme", establish_links=False))

        cleaned = asyncio.run(provisioner.discard(result, "store unavailable"))

        assert cleaned == list(reversed(result.table_ids))
        assert fake_client.deleted_tables == cleaned
        assert fake_client.tables == {}
        assert result.created_workspace is True
        assert fake_client.workspaces == {}

    def test_discard_keeps_configured_workspace(self, fake_client, token_manager):
        provisioner = SchemaProvisioner(fake_client, token_manager, workspace_id=42)
        result = asyncio.run(provisioner.provision("acme", establish_links=False))

        asyncio.run(provisioner.discard(result, "store unavailable"))

        assert fake_client.count("delete_workspace") == 0
        assert fake_client.databases == {}

    def test_incomplete_discard_raises_rollback_error(self, fake_client, token_manager):
        provisioner = SchemaProvisioner(fake_client, token_manager)
        result = asyncio.run(provisioner.provision("acme", establish_links=False))
        images_id = result.get_table("images").table_id
        fake_client.fail_when("delete_table", lambda table_id: table_id == images_id)

        with pytest.raises(RollbackError) as exc_info:
            asyncio.run(provisioner.discard(result, "store unavailable"))

        error = exc_info.value
        assert error.orphaned_table_ids == [images_id]
        assert len(error.cleaned_table_ids) == len(result.tables) - 1
        assert error.orphaned_database_id == result.database_id
        assert error.to_dict()["original"] is None
        assert fake_client.count("delete_workspace") == 0


class TestProgress:

    def test_progress_reports_each_creation_step(self, fake_client, token_manager):
        reached = []
        provisioner = SchemaProvisioner(fake_client, token_manager)

        asyncio.run(provisioner.provision("acme", establish_links=False, progress=reached.append))

        stages = [point.stage for point in reached]
        assert stages[:2] == ["workspace", "database"]
        assert stages[-1] == "database_token"
        assert [p.table_key for p in reached if p.stage == "table"] == CONTENT_ENGINE_SCHEMA.table_keys


class TestLinking:
    """Linking phase: no rollback, idempotent, re-runnable."""

    def test_linking_failure_leaves_tables(self, fake_client, token_manager):
        """A link failure raises LinkingError; all tables stay."""
        fake_client.fail_when("update_field", lambda field_id, payload: payload.get("has_related_field") is True)
        provisioner = SchemaProvisioner(fake_client, token_manager)

        with pytest.raises(LinkingError) as exc_info:
            asyncio.run(provisioner.provision("acme"))

        error = exc_info.value
        assert len(fake_client.tables) == len(CONTENT_ENGINE_SCHEMA)
        assert fake_client.deleted_tables == []
        assert error.failed_at.stage == "link"
        assert error.failed_at.table_key == "email_ideas"
        assert error.result is not None
        assert error.result.links_established is False

    def test_link_rerun_completes(self, fake_client, token_manager):
        """After a failed linking phase, link(result) finishes the job."""
        fake_client.fail_when(
            "update_field",
            lambda field_id, payload: payload.get("has_related_field") is True
            and fake_client.fields[field_id]["name"] == "Content Idea",
        )
        provisioner = SchemaProvisioner(fake_client, token_manager)

        async def scenario():
            try:
                await provisioner.provision("acme")
            except LinkingError as e:
                partial = e.result
            fake_client.clear_failures()
            return partial, await provisioner.link(partial)

        partial, linked = asyncio.run(scenario())

        links_before = sum(len(t.related_field_ids) for t in partial.tables.values())
        assert 0 < links_before < len(CONTENT_ENGINE_SCHEMA.links())
        assert linked.links_established is True
        assert sum(len(t.related_field_ids) for t in linked.tables.values()) == len(CONTENT_ENGINE_SCHEMA.links())

    def test_link_is_idempotent(self, fake_client, token_manager):
        """Re-running link on a linked result makes no remote changes."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        async def scenario():
            result = await provisioner.provision("acme")
            updates_before = fake_client.count("update_field")
            again = await provisioner.link(result)
            return result, again, updates_before

        result, again, updates_before = asyncio.run(scenario())

        assert fake_client.count("update_field") == updates_before
        assert again.model_dump() == result.model_dump()

    def test_link_does_not_modify_input(self, fake_client, token_manager):
        """link() works on a copy of the result."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        async def scenario():
            result = await provisioner.provision("acme", establish_links=False)
            linked = await provisioner.link(result)
            return result, linked

        result, linked = asyncio.run(scenario())

        assert result.links_established is False
        assert linked.links_established is True


class TestConcurrency:
    """Per-tenant attempt guard and cancellation safety."""

    def test_same_tenant_rejected_while_in_progress(self, fake_client, token_manager):
        """A second attempt for the same tenant raises ProvisioningInProgressError."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        async def scenario():
            gate = asyncio.Event()
            fake_client.block("create_workspace", gate)
            first = asyncio.ensure_future(provisioner.provision("acme"))
            await asyncio.sleep(0)
            with pytest.raises(ProvisioningInProgressError):
                await provisioner.provision("acme")
            gate.set()
            return await first

        result = asyncio.run(scenario())

        assert result.tenant_id == "acme"
        assert not provisioner.is_provisioning("acme")

    def test_different_tenants_run_concurrently(self, fake_client, token_manager):
        """Each tenant gets its own workspace and rollback set."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        async def scenario():
            return await asyncio.gather(
                provisioner.provision("acme"),
                provisioner.provision("globex"),
            )

        acme, globex = asyncio.run(scenario())

        assert acme.workspace_id != globex.workspace_id
        assert set(acme.table_ids).isdisjoint(globex.table_ids)
        assert len(fake_client.tables) == 2 * len(CONTENT_ENGINE_SCHEMA)

    def test_failure_in_one_tenant_does_not_touch_another(self, fake_client, token_manager):
        """Rollback only deletes the failing tenant's tables."""
        provisioner = SchemaProvisioner(fake_client, token_manager)
        fake_client.fail_when(
            "create_table",
            lambda database_id, name: fake_client.databases[database_id] == "globex" and name == "Images",
        )

        async def scenario():
            return await asyncio.gather(
                provisioner.provision("acme"),
                provisioner.provision("globex"),
                return_exceptions=True,
            )

        acme, globex = asyncio.run(scenario())

        assert isinstance(globex, ProvisioningError)
        assert len(acme.tables) == len(CONTENT_ENGINE_SCHEMA)
        assert set(acme.table_ids) <= set(fake_client.tables)

    def test_caller_cancellation_does_not_abandon_attempt(self, fake_client, token_manager):
        """Cancelling the caller lets the attempt finish."""
        provisioner = SchemaProvisioner(fake_client, token_manager)

        async def scenario():
            gate = asyncio.Event()
            fake_client.block("create_workspace", gate)
            caller = asyncio.ensure_future(provisioner.provision("acme"))
            await asyncio.sleep(0)
            caller.cancel()
            with pytest.raises(asyncio.CancelledError):
                await caller
            gate.set()
            while provisioner.is_provisioning("acme"):
                await asyncio.sleep(0)

        asyncio.run(scenario())

        assert len(fake_client.tables) == len(CONTENT_ENGINE_SCHEMA)
        assert fake_client.count("create_database_token") == 1
