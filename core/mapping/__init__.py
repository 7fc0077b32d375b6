"""Field mapping - semantic names <-> per-tenant remote field ids.

Raw remote values are decoded once, at this boundary, into a tagged union
(RemoteFieldValue) and reduced to plain strings, string lists or row-id
lists. Nothing past the registry inspects remote value shapes.
"""

from core.mapping.registry import (
    FieldMapping,
    FieldMappingRegistry,
    TableFieldMap,
    TenantFieldMap,
)
from core.mapping.values import (
    FieldCodec,
    FieldMappingError,
    FileList,
    FileRef,
    LinkRowList,
    RemoteFieldValue,
    Scalar,
    SelectOption,
    SelectOptionList,
    ValueKind,
    remote_field_key,
)

__all__ = [
    # Registry
    "FieldMapping",
    "FieldMappingRegistry",
    "TableFieldMap",
    "TenantFieldMap",

    # Values
    "FieldCodec",
    "FieldMappingError",
    "FileList",
    "FileRef",
    "LinkRowList",
    "RemoteFieldValue",
    "Scalar",
    "SelectOption",
    "SelectOptionList",
    "ValueKind",
    "remote_field_key",
]
