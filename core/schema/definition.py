"""Tenant schema declaration.

A SchemaDefinition is an immutable, versioned list of tables, each with an
ordered list of typed fields. Table order encodes creation order: a table
whose link fields point at another table must be declared after it. The
definition is validated on construction so a bad declaration fails at import
time rather than halfway through provisioning a tenant.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class SchemaDefinitionError(ValueError):
    """The schema declaration is internally inconsistent."""
    pass


class FieldType(str, Enum):
    """Remote field types used by the tenant schema."""
    TEXT = "text"
    LONG_TEXT = "long_text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    URL = "url"
    EMAIL = "email"
    SINGLE_SELECT = "single_select"
    MULTIPLE_SELECT = "multiple_select"
    FILE = "file"
    LINK_ROW = "link_row"
    CREATED_ON = "created_on"
    LAST_MODIFIED = "last_modified"
    AUTONUMBER = "autonumber"


def semantic_key(name: str) -> str:
    """Derive the semantic (snake_case) key for a remote field or table name.

    "Image Prompt" -> "image_prompt", "CTA" -> "cta", "Anime/Manga" -> "anime_manga"
    """
    key = re.sub(r"[^0-9a-zA-Z]+", "_", name.strip()).strip("_")
    return key.lower()


def select_options(*values: str, colors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Build type options for a single/multiple select field.

    Colors cycle through a fixed palette unless given explicitly.
    """
    palette = ["blue", "green", "purple", "orange", "red", "yellow", "pink", "gray"]
    colors = colors or {}
    return {
        "select_options": [
            {"value": value, "color": colors.get(value, palette[i % len(palette)])}
            for i, value in enumerate(values)
        ]
    }


@dataclass(frozen=True)
class FieldSpec:
    """A single field declaration.

    Attributes:
        name: Remote (display) field name
        type: Remote field type
        type_options: Type-specific options (e.g. select_options)
        key: Semantic name used by the application; derived from name if unset
        link_target: Table key a link_row field points at
        related_field_name: Name of the reverse field created in the target
            table during the linking phase (link_row only)
    """
    name: str
    type: FieldType
    type_options: Dict[str, Any] = field(default_factory=dict)
    key: Optional[str] = None
    link_target: Optional[str] = None
    related_field_name: Optional[str] = None

    @property
    def semantic_key(self) -> str:
        return self.key or semantic_key(self.name)

    @property
    def is_link(self) -> bool:
        return self.type == FieldType.LINK_ROW

    def to_payload(self, link_table_id: Optional[int] = None) -> Dict[str, Any]:
        """Request body for field creation.

        Link fields are created one-way; the reverse field is added by the
        linking phase.
        """
        payload: Dict[str, Any] = {"name": self.name, "type": self.type.value}
        payload.update(self.type_options)
        if self.is_link:
            if link_table_id is None:
                raise SchemaDefinitionError(
                    f"Link field '{self.name}' needs the remote id of table '{self.link_target}'"
                )
            payload["link_row_table_id"] = link_table_id
            payload["has_related_field"] = False
        return payload


@dataclass(frozen=True)
class TableSpec:
    """A table declaration.

    Attributes:
        key: Stable table key used by the application (e.g. "content_ideas")
        name: Remote table name
        primary: The table's primary field. The backend creates a default
            primary field with every table; it is converted to this spec.
        fields: Ordered field declarations (created in this order)
    """
    key: str
    name: str
    primary: FieldSpec
    fields: Tuple[FieldSpec, ...] = ()

    def all_fields(self) -> Tuple[FieldSpec, ...]:
        """Primary field followed by the declared fields."""
        return (self.primary,) + tuple(self.fields)

    def link_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.is_link]

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.all_fields():
            if spec.name == name:
                return spec
        return None


@dataclass(frozen=True)
class LinkSpec:
    """A relation established during the linking phase."""
    table_key: str
    field_name: str
    target_table_key: str
    related_field_name: str


@dataclass(frozen=True)
class SchemaDefinition:
    """Immutable, versioned tenant schema.

    Raises SchemaDefinitionError on construction if:
    - table keys or field names are duplicated
    - a link field has no target, or targets a table declared later
    - a reverse field name collides with a field of the target table
    """
    version: str
    tables: Tuple[TableSpec, ...]

    def __post_init__(self):
        self._validate()

    def _validate(self) -> None:
        seen: Dict[str, TableSpec] = {}
        reverse_names: Dict[str, set] = {}

        for table in self.tables:
            if table.key in seen:
                raise SchemaDefinitionError(f"Duplicate table key: {table.key}")
            if table.primary.is_link:
                raise SchemaDefinitionError(f"Primary field of '{table.key}' cannot be a link field")

            names = [f.name for f in table.all_fields()]
            duplicates = {n for n in names if names.count(n) > 1}
            if duplicates:
                raise SchemaDefinitionError(
                    f"Duplicate field names in '{table.key}': {sorted(duplicates)}"
                )
            keys = [f.semantic_key for f in table.all_fields()]
            if len(set(keys)) != len(keys):
                raise SchemaDefinitionError(f"Duplicate semantic field keys in '{table.key}'")

            for spec in table.link_fields():
                if not spec.link_target:
                    raise SchemaDefinitionError(
                        f"Link field '{table.key}.{spec.name}' has no link_target"
                    )
                if spec.link_target not in seen:
                    raise SchemaDefinitionError(
                        f"Link field '{table.key}.{spec.name}' targets '{spec.link_target}', "
                        f"which must be declared before '{table.key}'"
                    )
                related = spec.related_field_name or table.name
                target = seen[spec.link_target]
                taken = reverse_names.setdefault(target.key, set())
                if target.get_field(related) or related in taken:
                    raise SchemaDefinitionError(
                        f"Reverse field '{related}' collides with an "
                        f"existing field of '{target.key}'"
                    )
                taken.add(related)

            seen[table.key] = table

    def __iter__(self) -> Iterator[TableSpec]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)

    @property
    def table_keys(self) -> List[str]:
        return [t.key for t in self.tables]

    def get_table(self, key: str) -> TableSpec:
        for table in self.tables:
            if table.key == key:
                return table
        raise KeyError(f"Unknown table key: {key}")

    def links(self) -> List[LinkSpec]:
        """Relations to establish in the linking phase, in declaration order."""
        result = []
        for table in self.tables:
            for spec in table.link_fields():
                result.append(LinkSpec(
                    table_key=table.key,
                    field_name=spec.name,
                    target_table_key=spec.link_target,
                    related_field_name=spec.related_field_name or table.name,
                ))
        return result
