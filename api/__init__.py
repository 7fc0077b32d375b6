"""API Package.

FastAPI server for tenant provisioning.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
