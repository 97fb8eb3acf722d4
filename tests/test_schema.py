"""Request schema loading and value validation."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from upgrade_responder.errors import ConfigurationError, ValidationError
from upgrade_responder.schema import (
    EXTRA_INFO_TYPE_FIELD,
    EXTRA_INFO_TYPE_TAG,
    Schema,
    load_request_schema,
    load_request_schema_file,
    typed_field_value,
    validate,
    validate_extra_info,
)


@pytest.mark.parametrize(
    "schema, value, expected",
    [
        (Schema("string", 5), "1234", True),
        (Schema("string", 5), "12345", True),
        (Schema("string", 5), "123456", False),
        (Schema("string"), "123456", True),
        (Schema("string"), "x" * 200, True),
        (Schema("string"), "x" * 201, False),
        (Schema("string"), 1234, False),
        (Schema("string"), 1.0, False),
        (Schema("float"), 1, False),
        (Schema("float"), "1", False),
        (Schema("float"), False, False),
        (Schema("float"), 1.0, True),
        (Schema("boolean"), False, True),
        (Schema("boolean"), 0, False),
        (Schema("boolean"), "true", False),
        (Schema("invalid"), 1.0, False),
        (Schema("int"), 1.0, False),
        (Schema("int"), "1", False),
        (Schema("int"), 1, False),
    ],
)
def test_validate(schema, value, expected):
    assert validate(schema, value) is expected


class TestLoadRequestSchema:
    @pytest.mark.parametrize(
        "raw",
        [
            {"appVersionSchema": {"dataType": "float"}},
            {"appVersionSchema": {"dataType": "string", "maxLen": -1}},
            {},
            {
                "appVersionSchema": {"dataType": "string", "maxLen": 10},
                "extraTagInfoSchema": {"tag-1": {"dataType": "boolean"}},
            },
            {
                "appVersionSchema": {"dataType": "string", "maxLen": 10},
                "extraTagInfoSchema": {"tag-1": {"dataType": "string", "maxLen": -3}},
            },
            {
                "appVersionSchema": {"dataType": "string", "maxLen": 10},
                "extraTagInfoSchema": {"tag-1": {"dataType": "string"}},
                "extraFieldInfoSchema": {
                    "field-1": {"dataType": "string"},
                    "field-2": {"dataType": "float"},
                    "field-3": {"dataType": "int"},
                },
            },
            {
                "appVersionSchema": {"dataType": "string"},
                "extraFieldInfoSchema": {"field-1": {"dataType": "string", "maxLen": -1}},
            },
            {"appVersionSchema": {"dataType": "string", "maxLen": "10"}},
        ],
    )
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            load_request_schema(raw)

    def test_accepts_valid_schema(self):
        rs = load_request_schema({
            "appVersionSchema": {"dataType": "string", "maxLen": 10},
            "extraTagInfoSchema": {"tag-1": {"dataType": "string"}},
            "extraFieldInfoSchema": {
                "field-1": {"dataType": "string"},
                "field-2": {"dataType": "float"},
                "field-3": {"dataType": "boolean"},
            },
        })
        assert rs.app_version_schema == Schema("string", 10)
        assert set(rs.extra_tag_info_schema) == {"tag-1"}
        assert rs.extra_field_info_schema["field-3"].data_type == "boolean"

    def test_extra_schemas_are_optional(self):
        rs = load_request_schema({"appVersionSchema": {"dataType": "string"}})
        assert rs.extra_tag_info_schema == {}
        assert rs.extra_field_info_schema == {}


def test_validate_extra_info():
    rs = load_request_schema({
        "appVersionSchema": {"dataType": "string", "maxLen": 10},
        "extraTagInfoSchema": {"tag-1": {"dataType": "string", "maxLen": 5}},
        "extraFieldInfoSchema": {
            "field-1": {"dataType": "string"},
            "field-2": {"dataType": "float"},
            "field-3": {"dataType": "boolean"},
        },
    })
    assert validate_extra_info(rs, "tag-1", "1234", EXTRA_INFO_TYPE_TAG)
    assert not validate_extra_info(rs, "tag-1", "123456", EXTRA_INFO_TYPE_TAG)
    assert not validate_extra_info(rs, "tag-x", "1234", EXTRA_INFO_TYPE_TAG)
    assert validate_extra_info(rs, "field-1", "1234", EXTRA_INFO_TYPE_FIELD)
    assert not validate_extra_info(rs, "field-1", 1234, EXTRA_INFO_TYPE_FIELD)
    assert not validate_extra_info(rs, "field-x", 1234, EXTRA_INFO_TYPE_FIELD)
    # a tag key is not a field key and vice versa
    assert not validate_extra_info(rs, "tag-1", "1234", EXTRA_INFO_TYPE_FIELD)
    assert not validate_extra_info(rs, "field-2", 1.5, EXTRA_INFO_TYPE_TAG)
    assert not validate_extra_info(rs, "field-2", 1.5, "metric")


@pytest.mark.parametrize("value, expected", [("a", "a"), (1.5, 1.5), (True, True), (1, None), (None, None), ([1], None)])
def test_typed_field_value(value, expected):
    assert typed_field_value(value) == expected


class TestLoadRequestSchemaFile:
    def test_reads_file(self, tmp_path: Path):
        p = tmp_path / "schema.json"
        p.write_text(json.dumps({"appVersionSchema": {"dataType": "string", "maxLen": 50}}))
        assert load_request_schema_file(str(p)).app_version_schema.max_len == 50

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError):
            load_request_schema_file(str(tmp_path / "nope.json"))

    def test_bad_json(self, tmp_path: Path):
        p = tmp_path / "schema.json"
        p.write_text("[")
        with pytest.raises(ConfigurationError):
            load_request_schema_file(str(p))
