"""Tenant schema provisioning - all-or-nothing creation plus linking."""

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
from core.provisioning.provisioner import SchemaProvisioner

__all__ = [
    # Errors
    "FailurePoint",
    "LinkingError",
    "ProvisioningError",
    "ProvisioningInProgressError",
    "RollbackError",

    # Models
    "ProvisioningResult",
    "TableProvisioningResult",
    "TenantWorkspace",

    # Provisioner
    "SchemaProvisioner",
]
