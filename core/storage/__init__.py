"""Core storage - tenant configuration and provisioning job records."""

from core.storage.tenant_store import (
    JobStatus,
    TERMINAL_STATUSES,
    TenantConfigStore,
)

__all__ = [
    "JobStatus",
    "TERMINAL_STATUSES",
    "TenantConfigStore",
]
