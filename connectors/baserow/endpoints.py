"""Baserow REST endpoints, pinned per declared API version.

Each logical operation has exactly one endpoint. A server that rejects it is
reported as an error; endpoints are never discovered at runtime.
"""

from dataclasses import dataclass
from typing import Dict

from core.config import ConfigurationError


@dataclass(frozen=True)
class BaserowEndpoints:
    """Path templates for one Baserow API version."""
    token_auth: str
    token_refresh: str
    workspaces: str
    workspace: str
    workspace_applications: str
    application: str
    database_tokens: str
    database_tables: str
    table: str
    table_fields: str
    field: str

    def url(self, base_url: str, name: str, **params) -> str:
        """Build an absolute URL for a named endpoint."""
        template = getattr(self, name)
        return f"{base_url.rstrip('/')}{template.format(**params)}"


API_VERSIONS: Dict[str, BaserowEndpoints] = {
    "v1": BaserowEndpoints(
        token_auth="/api/user/token-auth/",
        token_refresh="/api/user/token-refresh/",
        workspaces="/api/workspaces/",
        workspace="/api/workspaces/{workspace_id}/",
        workspace_applications="/api/applications/workspace/{workspace_id}/",
        application="/api/applications/{application_id}/",
        database_tokens="/api/database/tokens/",
        database_tables="/api/database/tables/database/{database_id}/",
        table="/api/database/tables/{table_id}/",
        table_fields="/api/database/fields/table/{table_id}/",
        field="/api/database/fields/{field_id}/",
    ),
}


def resolve_endpoints(api_version: str) -> BaserowEndpoints:
    """Get the endpoint table for a declared API version."""
    try:
        return API_VERSIONS[api_version]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported Baserow API version '{api_version}'. "
            f"Supported: {', '.join(sorted(API_VERSIONS))}"
        )
