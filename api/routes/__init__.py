"""API Routes Package."""

from api.routes import health, tenants

__all__ = [
    "health",
    "tenants",
]
