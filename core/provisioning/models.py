"""Provisioning result models.

ProvisioningResult is what a successful (or partial) provisioning run hands
to the tenant configuration store and the field mapping registry. It crosses
the Temporal boundary as a plain dict (``model_dump`` / ``model_validate``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TableProvisioningResult(BaseModel):
    """Remote identifiers for one provisioned table.

    Attributes:
        table_key: Stable table key from the schema definition
        table_name: Remote table name
        table_id: Remote table id
        primary_field_id: Id of the table's primary field
        field_ids: Remote field id by remote field name, in creation order
        select_options: Option id by option value, per select field name
        related_field_ids: Reverse field id in the target table, per link
            field name (filled by the linking phase)
    """
    table_key: str = Field(..., description="Schema table key")
    table_name: str = Field(..., description="Remote table name")
    table_id: int = Field(..., description="Remote table id")
    primary_field_id: Optional[int] = Field(None, description="Primary field id")
    field_ids: Dict[str, int] = Field(default_factory=dict, description="Field id by field name")
    select_options: Dict[str, Dict[str, int]] = Field(
        default_factory=dict, description="Option id by value, per select field"
    )
    related_field_ids: Dict[str, int] = Field(
        default_factory=dict, description="Reverse field id per link field"
    )

    def field_id(self, name: str) -> int:
        try:
            return self.field_ids[name]
        except KeyError:
            raise KeyError(f"Field '{name}' was not provisioned in table '{self.table_key}'")


class ProvisioningResult(BaseModel):
    """Everything needed to talk to a provisioned tenant.

    Attributes:
        tenant_id: Tenant the schema belongs to
        schema_version: Version of the SchemaDefinition that was applied
        workspace_id: Remote workspace containing the tenant database
        database_id: Remote database (base) holding the tenant tables
        database_token: Per-tenant database token used for CRUD
        tables: Per-table results, keyed by table key, in creation order
        links_established: True once the linking phase has completed
        provisioned_at: Completion time of the creation phase
        created_workspace: True if the workspace was created for this tenant
            (and is removed with it on discard)
    """
    tenant_id: str = Field(..., description="Tenant identifier")
    schema_version: str = Field(..., description="Applied schema version")
    workspace_id: Optional[int] = Field(None, description="Remote workspace id")
    created_workspace: bool = Field(default=False, description="Workspace created for this tenant")
    database_id: Optional[int] = Field(None, description="Remote database id")
    database_token: Optional[str] = Field(None, description="Per-tenant database token")
    tables: Dict[str, TableProvisioningResult] = Field(default_factory=dict)
    links_established: bool = Field(default=False, description="Linking phase completed")
    provisioned_at: Optional[datetime] = Field(None, description="Creation phase completion time")

    @property
    def table_ids(self) -> List[int]:
        """Remote table ids in creation order."""
        return [t.table_id for t in self.tables.values()]

    def get_table(self, table_key: str) -> TableProvisioningResult:
        try:
            return self.tables[table_key]
        except KeyError:
            raise KeyError(f"Table '{table_key}' is not part of tenant '{self.tenant_id}'")


@dataclass
class TenantWorkspace:
    """Remote container for one provisioning attempt and its rollback set.

    Attributes:
        tenant_id: Tenant being provisioned
        workspace_id: Workspace holding the database
        database_id: Database (base) the tables are created in
        created_workspace: True if this attempt created the workspace
        created_database: True if this attempt created the database
        created_table_ids: Table ids created by this attempt, in creation order
    """
    tenant_id: str
    workspace_id: Optional[int] = None
    database_id: Optional[int] = None
    created_workspace: bool = False
    created_database: bool = False
    created_table_ids: List[int] = field(default_factory=list)

    def record_table(self, table_id: int) -> None:
        self.created_table_ids.append(table_id)

    def rollback_order(self) -> List[int]:
        """Tables to delete, most recently created first."""
        return list(reversed(self.created_table_ids))
