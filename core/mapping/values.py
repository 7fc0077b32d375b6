"""Remote field values and per-field codecs.

The backend returns the same logical value in several shapes depending on
the field type:

    scalar            "Hello", 3, true, null
    single select     {"id": 1, "value": "Draft", "color": "blue"}
    multiple select   [{"id": 1, "value": "Facebook", ...}, ...]
    file              [{"url": "...", "name": "a1b2.png", "visible_name": "logo.png"}, ...]
    link row          [{"id": 12, "value": "Row 12 primary text"}, ...]

Select lists and link-row lists look alike, so a raw value is decoded with
the field's kind into exactly one RemoteFieldValue variant. Application code
only ever sees the reduced semantic forms: a string (or None), a list of
strings, or a list of row ids.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from core.schema.definition import FieldType


class FieldMappingError(Exception):
    """A record could not be translated between semantic and remote form."""
    pass


class ValueKind(str, Enum):
    """How a field's remote value is shaped."""
    SCALAR = "scalar"
    SINGLE_SELECT = "single_select"
    MULTI_SELECT = "multi_select"
    FILE = "file"
    LINK_ROW = "link_row"


_KIND_BY_FIELD_TYPE = {
    FieldType.SINGLE_SELECT: ValueKind.SINGLE_SELECT,
    FieldType.MULTIPLE_SELECT: ValueKind.MULTI_SELECT,
    FieldType.FILE: ValueKind.FILE,
    FieldType.LINK_ROW: ValueKind.LINK_ROW,
}

READ_ONLY_FIELD_TYPES = frozenset({
    FieldType.CREATED_ON,
    FieldType.LAST_MODIFIED,
    FieldType.AUTONUMBER,
})


def kind_for(field_type: FieldType) -> ValueKind:
    return _KIND_BY_FIELD_TYPE.get(field_type, ValueKind.SCALAR)


# =============================================================================
# Tagged union
# =============================================================================

@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class SelectOption:
    value: Optional[str]
    id: Optional[int] = None
    color: Optional[str] = None


@dataclass(frozen=True)
class SelectOptionList:
    options: Tuple[SelectOption, ...] = ()


@dataclass(frozen=True)
class FileRef:
    name: str
    url: Optional[str] = None
    visible_name: Optional[str] = None


@dataclass(frozen=True)
class FileList:
    files: Tuple[FileRef, ...] = ()


@dataclass(frozen=True)
class LinkRowList:
    ids: Tuple[int, ...] = ()


RemoteFieldValue = Union[Scalar, SelectOption, SelectOptionList, FileList, LinkRowList]

SemanticValue = Union[None, str, List[str], List[int]]


def _as_list(raw: Any, kind: ValueKind) -> List[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise FieldMappingError(f"Expected a list for {kind.value} field, got {type(raw).__name__}")
    return raw


def _scalar_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Codec
# =============================================================================

@dataclass(frozen=True)
class FieldCodec:
    """Translation rules for one remote field.

    Attributes:
        kind: Remote value shape
        field_type: Remote field type
        option_ids: Select option id by option value (select fields only)
        read_only: Backend-computed field; omitted from writes
    """
    kind: ValueKind
    field_type: FieldType = FieldType.TEXT
    option_ids: Mapping[str, int] = field(default_factory=dict)
    read_only: bool = False

    @classmethod
    def for_field_type(
        cls,
        field_type: FieldType,
        option_ids: Optional[Mapping[str, int]] = None,
    ) -> "FieldCodec":
        return cls(
            kind=kind_for(field_type),
            field_type=field_type,
            option_ids=dict(option_ids or {}),
            read_only=field_type in READ_ONLY_FIELD_TYPES,
        )

    def _option_value(self, option_id: int) -> Optional[str]:
        for value, known_id in self.option_ids.items():
            if known_id == option_id:
                return value
        return None

    def _decode_option(self, raw: Any) -> SelectOption:
        if isinstance(raw, dict):
            return SelectOption(value=raw.get("value"), id=raw.get("id"), color=raw.get("color"))
        if isinstance(raw, bool):
            raise FieldMappingError(f"Unexpected boolean in select field: {raw!r}")
        if isinstance(raw, int):
            value = self._option_value(raw)
            if value is None:
                raise FieldMappingError(f"Unknown select option id: {raw}")
            return SelectOption(value=value, id=raw)
        if isinstance(raw, str):
            return SelectOption(value=raw, id=self.option_ids.get(raw))
        raise FieldMappingError(f"Cannot decode select option from {type(raw).__name__}")

    def decode(self, raw: Any) -> RemoteFieldValue:
        """Decode a raw remote value into its RemoteFieldValue variant."""
        if self.kind == ValueKind.SCALAR:
            if isinstance(raw, (dict, list)):
                raise FieldMappingError(f"Expected a scalar value, got {type(raw).__name__}")
            return Scalar(raw)

        if self.kind == ValueKind.SINGLE_SELECT:
            if raw is None:
                return SelectOption(value=None)
            return self._decode_option(raw)

        if self.kind == ValueKind.MULTI_SELECT:
            return SelectOptionList(tuple(self._decode_option(item) for item in _as_list(raw, self.kind)))

        if self.kind == ValueKind.FILE:
            files = []
            for item in _as_list(raw, self.kind):
                if isinstance(item, str):
                    files.append(FileRef(name=item))
                elif isinstance(item, dict) and item.get("name"):
                    files.append(FileRef(name=item["name"], url=item.get("url"), visible_name=item.get("visible_name")))
                else:
                    raise FieldMappingError(f"Cannot decode file reference: {item!r}")
            return FileList(tuple(files))

        ids = []
        for item in _as_list(raw, self.kind):
            row_id = item.get("id") if isinstance(item, dict) else item
            if isinstance(row_id, bool) or not isinstance(row_id, int):
                raise FieldMappingError(f"Cannot decode linked row id: {item!r}")
            ids.append(row_id)
        return LinkRowList(tuple(ids))

    def reduce(self, value: RemoteFieldValue) -> SemanticValue:
        """Reduce a decoded value to its semantic form."""
        if isinstance(value, Scalar):
            return _scalar_text(value.value)
        if isinstance(value, SelectOption):
            return value.value
        if isinstance(value, SelectOptionList):
            return [option.value for option in value.options]
        if isinstance(value, FileList):
            return [f.name for f in value.files]
        if isinstance(value, LinkRowList):
            return list(value.ids)
        raise FieldMappingError(f"Unknown remote value variant: {type(value).__name__}")

    def from_remote(self, raw: Any) -> SemanticValue:
        return self.reduce(self.decode(raw))

    def _encode_option(self, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if not isinstance(value, str):
            raise FieldMappingError(f"Select values must be strings, got {type(value).__name__}")
        return self.option_ids.get(value, value)

    def to_remote(self, value: Any) -> Any:
        """Encode a semantic value into the shape the backend accepts on write."""
        if self.kind == ValueKind.SCALAR:
            if isinstance(value, (dict, list)):
                raise FieldMappingError(f"Expected a scalar value, got {type(value).__name__}")
            if self.field_type == FieldType.BOOLEAN and isinstance(value, str):
                return value.strip().lower() == "true"
            return value

        if self.kind == ValueKind.SINGLE_SELECT:
            return None if value is None else self._encode_option(value)

        values = [] if value is None else value
        if not isinstance(values, list):
            raise FieldMappingError(f"Expected a list for {self.kind.value} field, got {type(value).__name__}")

        if self.kind == ValueKind.MULTI_SELECT:
            return [self._encode_option(v) for v in values]
        if self.kind == ValueKind.FILE:
            return [{"name": v} if isinstance(v, str) else v for v in values]
        return [v["id"] if isinstance(v, dict) else v for v in values]


def remote_field_key(field_id: int) -> str:
    """Row key the backend uses for a field ("field_<id>")."""
    return f"field_{field_id}"
