"""
Request schema: which extra tag/field keys a client may send, their data types
and size limits. Loaded and validated once at startup.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_LEN = 200

EXTRA_INFO_TYPE_TAG = "tag"
EXTRA_INFO_TYPE_FIELD = "field"

# value that survived validation; downstream code never sees other types
FieldValue = Union[str, float, bool]


class DataType(str, Enum):
    STRING = "string"
    FLOAT = "float"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class Schema:
    data_type: str
    max_len: int = 0

    @property
    def effective_max_len(self) -> int:
        return self.max_len if self.max_len > 0 else DEFAULT_MAX_LEN

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Schema":
        if not isinstance(raw, Mapping):
            raise ValidationError(f"schema must be an object, got {type(raw).__name__}")
        data_type = raw.get("dataType", "")
        max_len = raw.get("maxLen", 0)
        if not isinstance(data_type, str):
            raise ValidationError(f"dataType must be a string, got {data_type!r}")
        if isinstance(max_len, bool) or not isinstance(max_len, int):
            raise ValidationError(f"maxLen must be an integer, got {max_len!r}")
        return cls(data_type=data_type, max_len=max_len)


@dataclass(frozen=True)
class RequestSchema:
    app_version_schema: Schema
    extra_tag_info_schema: Dict[str, Schema] = field(default_factory=dict)
    extra_field_info_schema: Dict[str, Schema] = field(default_factory=dict)


def typed_field_value(value: Any) -> Optional[FieldValue]:
    """Narrow a raw JSON value to str/float/bool, or None for anything else."""
    if isinstance(value, (bool, str, float)):
        return value
    return None


def validate(schema: Schema, value: Any) -> bool:
    if schema.data_type == DataType.STRING.value:
        return isinstance(value, str) and len(value) <= schema.effective_max_len
    if schema.data_type == DataType.FLOAT.value:
        # bool is an int subclass and int is not a float: both rejected
        return isinstance(value, float)
    if schema.data_type == DataType.BOOLEAN.value:
        return isinstance(value, bool)
    return False


def validate_extra_info(request_schema: RequestSchema, key: str, value: Any, kind: str) -> bool:
    if kind == EXTRA_INFO_TYPE_TAG:
        schemas = request_schema.extra_tag_info_schema
    elif kind == EXTRA_INFO_TYPE_FIELD:
        schemas = request_schema.extra_field_info_schema
    else:
        return False

    schema = schemas.get(key)
    if schema is None:
        return False
    return validate(schema, value)


def _check_string_schema(what: str, schema: Schema) -> None:
    if schema.data_type != DataType.STRING.value:
        raise ValidationError(f"{what} must have dataType string, got {schema.data_type!r}")
    if schema.max_len < 0:
        raise ValidationError(f"{what} has negative maxLen {schema.max_len}")


def _schema_map(raw: Any, what: str) -> Dict[str, Schema]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationError(f"{what} must be an object")
    return {str(k): Schema.from_dict(v) for k, v in raw.items()}


def load_request_schema(raw: Mapping[str, Any]) -> RequestSchema:
    if not isinstance(raw, Mapping):
        raise ValidationError("request schema must be an object")

    app_version = Schema.from_dict(raw.get("appVersionSchema") or {})
    _check_string_schema("appVersionSchema", app_version)

    tags = _schema_map(raw.get("extraTagInfoSchema"), "extraTagInfoSchema")
    for key, s in tags.items():
        # tags are indexed strings, never numeric/boolean
        _check_string_schema(f"extraTagInfoSchema[{key}]", s)

    fields = _schema_map(raw.get("extraFieldInfoSchema"), "extraFieldInfoSchema")
    allowed = {d.value for d in DataType}
    for key, s in fields.items():
        if s.data_type not in allowed:
            raise ValidationError(f"extraFieldInfoSchema[{key}] has unsupported dataType {s.data_type!r}")
        if s.data_type == DataType.STRING.value and s.max_len < 0:
            raise ValidationError(f"extraFieldInfoSchema[{key}] has negative maxLen {s.max_len}")

    return RequestSchema(
        app_version_schema=app_version,
        extra_tag_info_schema=tags,
        extra_field_info_schema=fields,
    )


def load_request_schema_file(path: str) -> RequestSchema:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"fail to open request schema {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"fail to decode request schema {path}: {e}") from e

    rs = load_request_schema(raw)
    logger.info(
        "Loaded request schema from %s (%d tag keys, %d field keys)",
        path,
        len(rs.extra_tag_info_schema),
        len(rs.extra_field_info_schema),
    )
    return rs
