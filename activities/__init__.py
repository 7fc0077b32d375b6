"""Activity definitions module."""

from activities.provision import (
    ProvisioningActivities,
    ProvisionSchemaInput,
    PersistTenantConfigInput,
    DiscardSchemaInput,
    LinkSchemaInput,
    UpdateJobStatusInput,
)

__all__ = [
    "ProvisioningActivities",
    "ProvisionSchemaInput",
    "PersistTenantConfigInput",
    "DiscardSchemaInput",
    "LinkSchemaInput",
    "UpdateJobStatusInput",
]
