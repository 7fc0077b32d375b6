"""Provisioning errors.

ProvisioningError and RollbackError are unrelated classes: catching
ProvisioningError never catches a failure that left orphaned remote tables.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from core.provisioning.models import ProvisioningResult


@dataclass(frozen=True)
class FailurePoint:
    """Where a provisioning attempt stopped.

    Attributes:
        stage: "workspace", "database", "table", "primary_field", "field",
            "database_token" or "link"
        table_key: Table being created (None for container stages)
        table_index: 1-based position of the table in the schema
        field_name: Field being created, if any
        field_index: 1-based position of the field within the table's
            declared fields
    """
    stage: str
    table_key: Optional[str] = None
    table_index: Optional[int] = None
    field_name: Optional[str] = None
    field_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        parts = [self.stage]
        if self.table_key:
            parts.append(f"table {self.table_index} ({self.table_key})")
        if self.field_name:
            parts.append(f"field {self.field_index} ({self.field_name})")
        return " / ".join(parts)


class ProvisioningError(Exception):
    """A creation step failed and every created table was deleted.

    Attributes:
        tenant_id: Tenant whose provisioning failed
        failed_at: Where the attempt stopped
        partial_result: Identifiers created before the failure (now deleted)
        cleaned_table_ids: Tables removed by rollback, in deletion order
        cause: The underlying failure
    """

    def __init__(
        self,
        message: str,
        tenant_id: str,
        failed_at: FailurePoint,
        partial_result: Optional[ProvisioningResult] = None,
        cleaned_table_ids: Optional[List[int]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.failed_at = failed_at
        self.partial_result = partial_result
        self.cleaned_table_ids = cleaned_table_ids or []
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "tenant_id": self.tenant_id,
            "failed_at": self.failed_at.to_dict(),
            "cleaned_table_ids": self.cleaned_table_ids,
        }


class RollbackError(Exception):
    """Rollback after a failed provisioning attempt was itself incomplete.

    Attributes:
        tenant_id: Tenant whose provisioning failed
        orphaned_table_ids: Tables that could not be deleted
        cleaned_table_ids: Tables that were deleted
        original: The failure that triggered rollback (None when a kept
            schema was discarded)
        failed_at: Where the original attempt stopped
        orphaned_database_id: Database left behind, if its deletion failed
    """

    def __init__(
        self,
        message: str,
        tenant_id: str,
        orphaned_table_ids: List[int],
        original: Optional[BaseException],
        cleaned_table_ids: Optional[List[int]] = None,
        failed_at: Optional[FailurePoint] = None,
        orphaned_database_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.orphaned_table_ids = orphaned_table_ids
        self.original = original
        self.cleaned_table_ids = cleaned_table_ids or []
        self.failed_at = failed_at
        self.orphaned_database_id = orphaned_database_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "tenant_id": self.tenant_id,
            "orphaned_table_ids": self.orphaned_table_ids,
            "orphaned_database_id": self.orphaned_database_id,
            "cleaned_table_ids": self.cleaned_table_ids,
            "failed_at": self.failed_at.to_dict() if self.failed_at else None,
            "original": str(self.original) if self.original is not None else None,
        }


class LinkingError(Exception):
    """The linking phase failed. Tables stay in place; re-run link()."""

    def __init__(
        self,
        message: str,
        tenant_id: str,
        failed_at: FailurePoint,
        result: Optional[ProvisioningResult] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.failed_at = failed_at
        self.result = result
        self.cause = cause


class ProvisioningInProgressError(Exception):
    """Another provisioning attempt for the same tenant is already running."""

    def __init__(self, tenant_id: str):
        super().__init__(f"Provisioning already in progress for tenant '{tenant_id}'")
        self.tenant_id = tenant_id
