"""Per-tenant field mapping registry.

Every tenant has its own remote field ids. The registry holds, per tenant and
per table, the bidirectional map between semantic keys ("image_prompt") and
remote field keys ("field_7101"), plus one codec per field. Entries are
derived from a ProvisioningResult, or loaded from configuration for tenants
that were set up before provisioning was automated.

Usage:
    registry = FieldMappingRegistry()
    registry.register_result(result, CONTENT_ENGINE_SCHEMA)
    row = registry.to_remote("acme", "images", {"image_prompt": "A red bicycle"})
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import hashlib
import json

from core.mapping.values import (
    FieldCodec,
    FieldMappingError,
    SemanticValue,
    remote_field_key,
)
from core.observability.logging import get_logger
from core.provisioning.models import ProvisioningResult
from core.schema.definition import FieldType, SchemaDefinition, semantic_key

logger = get_logger(__name__)

ROW_ID_KEY = "id"


def result_revision(result: ProvisioningResult) -> str:
    """Content hash of a provisioning result; changes whenever its ids do."""
    return hashlib.sha256(result.model_dump_json().encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class FieldMapping:
    """One semantic key bound to one remote field."""
    semantic_key: str
    field_id: int
    codec: FieldCodec
    field_name: Optional[str] = None

    @property
    def remote_key(self) -> str:
        return remote_field_key(self.field_id)


@dataclass
class TableFieldMap:
    """Bidirectional field map for one tenant table."""
    table_key: str
    table_id: int
    fields: List[FieldMapping] = field(default_factory=list)

    def __post_init__(self):
        self._by_semantic: Dict[str, FieldMapping] = {}
        self._by_remote: Dict[str, FieldMapping] = {}
        for mapping in self.fields:
            self._index(mapping)

    def _index(self, mapping: FieldMapping) -> None:
        if mapping.semantic_key in self._by_semantic:
            raise FieldMappingError(
                f"Duplicate semantic key '{mapping.semantic_key}' in table '{self.table_key}'"
            )
        if mapping.remote_key in self._by_remote:
            raise FieldMappingError(
                f"Field {mapping.field_id} mapped twice in table '{self.table_key}'"
            )
        self._by_semantic[mapping.semantic_key] = mapping
        self._by_remote[mapping.remote_key] = mapping

    def add(self, mapping: FieldMapping) -> None:
        self._index(mapping)
        self.fields.append(mapping)

    def __iter__(self) -> Iterator[FieldMapping]:
        return iter(self.fields)

    def field_id(self, key: str) -> int:
        """Remote field id for a semantic key."""
        try:
            return self._by_semantic[key].field_id
        except KeyError:
            raise FieldMappingError(f"Unknown field '{key}' in table '{self.table_key}'")

    def semantic_key(self, field_id: int) -> str:
        """Semantic key for a remote field id."""
        try:
            return self._by_remote[remote_field_key(field_id)].semantic_key
        except KeyError:
            raise FieldMappingError(f"Field {field_id} is not mapped in table '{self.table_key}'")

    def to_remote(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Translate a semantic record into a remote row body.

        The row id is dropped (it travels in the URL) and backend-computed
        fields are omitted. Unknown keys raise FieldMappingError.
        """
        unknown = [k for k in record if k != ROW_ID_KEY and k not in self._by_semantic]
        if unknown:
            raise FieldMappingError(
                f"Unknown field(s) for table '{self.table_key}': {', '.join(sorted(unknown))}"
            )

        row: Dict[str, Any] = {}
        for key, value in record.items():
            if key == ROW_ID_KEY:
                continue
            mapping = self._by_semantic[key]
            if mapping.codec.read_only:
                continue
            try:
                row[mapping.remote_key] = mapping.codec.to_remote(value)
            except FieldMappingError as e:
                raise FieldMappingError(f"{self.table_key}.{key}: {e}") from e
        return row

    def from_remote(self, row: Dict[str, Any]) -> Dict[str, SemanticValue]:
        """Translate a remote row into a semantic record.

        Fields absent from the row are absent from the record; remote fields
        without a mapping are ignored.
        """
        record: Dict[str, Any] = {}
        if ROW_ID_KEY in row:
            record[ROW_ID_KEY] = row[ROW_ID_KEY]
        for mapping in self.fields:
            if mapping.remote_key not in row:
                continue
            try:
                record[mapping.semantic_key] = mapping.codec.from_remote(row[mapping.remote_key])
            except FieldMappingError as e:
                raise FieldMappingError(f"{self.table_key}.{mapping.semantic_key}: {e}") from e
        return record

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_id": self.table_id,
            "fields": {
                m.semantic_key: {
                    "id": m.field_id,
                    "type": m.codec.field_type.value,
                    "name": m.field_name,
                    "options": dict(m.codec.option_ids),
                }
                for m in self.fields
            },
        }


@dataclass
class TenantFieldMap:
    """All table maps for one tenant."""
    tenant_id: str
    tables: Dict[str, TableFieldMap] = field(default_factory=dict)
    revision: Optional[str] = None

    def table(self, table_key: str) -> TableFieldMap:
        try:
            return self.tables[table_key]
        except KeyError:
            raise FieldMappingError(f"Tenant '{self.tenant_id}' has no table '{table_key}'")

    def to_remote(self, table_key: str, record: Dict[str, Any]) -> Dict[str, Any]:
        return self.table(table_key).to_remote(record)

    def from_remote(self, table_key: str, row: Dict[str, Any]) -> Dict[str, SemanticValue]:
        return self.table(table_key).from_remote(row)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "tables": {key: table.to_dict() for key, table in self.tables.items()},
        }

    @classmethod
    def from_result(cls, result: ProvisioningResult, schema: SchemaDefinition) -> "TenantFieldMap":
        """Derive the tenant's map from a provisioning result.

        Reverse link fields created by the linking phase are mapped in their
        target tables once the result records them.
        """
        tenant_map = cls(tenant_id=result.tenant_id, revision=result_revision(result))

        for table_spec in schema:
            table_result = result.get_table(table_spec.key)
            table_map = TableFieldMap(table_key=table_spec.key, table_id=table_result.table_id)
            for spec in table_spec.all_fields():
                table_map.add(FieldMapping(
                    semantic_key=spec.semantic_key,
                    field_id=table_result.field_id(spec.name),
                    codec=FieldCodec.for_field_type(spec.type, table_result.select_options.get(spec.name)),
                    field_name=spec.name,
                ))
            tenant_map.tables[table_spec.key] = table_map

        for link in schema.links():
            related_id = result.get_table(link.table_key).related_field_ids.get(link.field_name)
            if related_id is None:
                continue
            tenant_map.tables[link.target_table_key].add(FieldMapping(
                semantic_key=semantic_key(link.related_field_name),
                field_id=related_id,
                codec=FieldCodec.for_field_type(FieldType.LINK_ROW),
                field_name=link.related_field_name,
            ))

        return tenant_map

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "TenantFieldMap":
        """Build a map from externally supplied configuration.

        Expected format:
        {
            "tenant_id": "acme",
            "tables": {
                "images": {
                    "table_id": 641,
                    "fields": {
                        "image_prompt": {"id": 7101, "type": "long_text"},
                        "image_status": {"id": 7108, "type": "single_select",
                                         "options": {"Draft": 3001}}
                    }
                }
            }
        }
        """
        try:
            tenant_map = cls(tenant_id=config["tenant_id"])
            for table_key, table_config in config.get("tables", {}).items():
                table_map = TableFieldMap(table_key=table_key, table_id=int(table_config["table_id"]))
                for key, field_config in table_config.get("fields", {}).items():
                    table_map.add(FieldMapping(
                        semantic_key=key,
                        field_id=int(field_config["id"]),
                        codec=FieldCodec.for_field_type(
                            FieldType(field_config.get("type", FieldType.TEXT.value)),
                            field_config.get("options"),
                        ),
                        field_name=field_config.get("name"),
                    ))
                tenant_map.tables[table_key] = table_map
        except (KeyError, ValueError, TypeError) as e:
            raise FieldMappingError(f"Invalid field mapping configuration: {e}") from e
        return tenant_map


class FieldMappingRegistry:
    """Field maps for every known tenant."""

    def __init__(self):
        self._tenants: Dict[str, TenantFieldMap] = {}

    def register(self, tenant_map: TenantFieldMap) -> TenantFieldMap:
        self._tenants[tenant_map.tenant_id] = tenant_map
        logger.info(
            f"Registered field map for tenant {tenant_map.tenant_id}",
            extra_fields={"tables": len(tenant_map.tables)},
        )
        return tenant_map

    def register_result(self, result: ProvisioningResult, schema: SchemaDefinition) -> TenantFieldMap:
        return self.register(TenantFieldMap.from_result(result, schema))

    def sync_result(self, result: ProvisioningResult, schema: SchemaDefinition) -> TenantFieldMap:
        """Map for a stored result, rebuilt if the result changed since it was registered."""
        current = self._tenants.get(result.tenant_id)
        if current is not None and current.revision == result_revision(result):
            return current
        return self.register_result(result, schema)

    def register_config(self, config: Dict[str, Any]) -> TenantFieldMap:
        return self.register(TenantFieldMap.from_config(config))

    def load_from_json(self, path: Path) -> int:
        """Load tenant maps from a JSON file ({"tenants": [<config>, ...]}).

        Returns:
            Number of tenants loaded
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        count = 0
        for tenant_config in data.get("tenants", []):
            self.register_config(tenant_config)
            count += 1
        return count

    def save_to_json(self, path: Path) -> None:
        tenants = [tenant_map.to_dict() for tenant_map in self._tenants.values()]
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"tenants": tenants}, f, indent=2)

    def has_tenant(self, tenant_id: str) -> bool:
        return tenant_id in self._tenants

    def remove(self, tenant_id: str) -> bool:
        return self._tenants.pop(tenant_id, None) is not None

    def for_tenant(self, tenant_id: str) -> TenantFieldMap:
        try:
            return self._tenants[tenant_id]
        except KeyError:
            raise FieldMappingError(f"No field mapping registered for tenant '{tenant_id}'")

    def to_remote(self, tenant_id: str, table_key: str, record: Dict[str, Any]) -> Dict[str, Any]:
        return self.for_tenant(tenant_id).to_remote(table_key, record)

    def from_remote(self, tenant_id: str, table_key: str, row: Dict[str, Any]) -> Dict[str, SemanticValue]:
        return self.for_tenant(tenant_id).from_remote(table_key, row)
