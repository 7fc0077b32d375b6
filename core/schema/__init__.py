"""Tenant schema declarations.

The schema every tenant gets lives in ``content_engine``; ``definition``
holds the immutable types and their validation.
"""

from core.schema.definition import (
    FieldSpec,
    FieldType,
    LinkSpec,
    SchemaDefinition,
    SchemaDefinitionError,
    TableSpec,
    select_options,
    semantic_key,
)
from core.schema.content_engine import CONTENT_ENGINE_SCHEMA, SCHEMA_VERSION

__all__ = [
    "FieldSpec",
    "FieldType",
    "LinkSpec",
    "SchemaDefinition",
    "SchemaDefinitionError",
    "TableSpec",
    "select_options",
    "semantic_key",
    "CONTENT_ENGINE_SCHEMA",
    "SCHEMA_VERSION",
]
