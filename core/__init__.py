"""Core module - backend-neutral provisioning.

Schema declarations, the provisioner, field mapping, tenant storage and
logging. Backend-specific HTTP details (Baserow endpoints, auth) belong in
/connectors/.
"""

__version__ = "1.0.0"
