"""TelemetryPointBuilder: tags, fields and schema-driven dropping."""
from __future__ import annotations

import pytest

from upgrade_responder.models import CheckUpgradeRequest
from upgrade_responder.points import (
    MEASUREMENT,
    Location,
    TelemetryPoint,
    TelemetryPointBuilder,
    to_snake_case,
)


def _req(**body) -> CheckUpgradeRequest:
    return CheckUpgradeRequest.model_validate(body)


@pytest.fixture
def builder(request_schema) -> TelemetryPointBuilder:
    return TelemetryPointBuilder(request_schema, clock=lambda: 42)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("kubernetesVersion", "kubernetes_version"),
        ("nodeCount", "node_count"),
        ("isV2DataEngineEnabled", "is_v2_data_engine_enabled"),
        ("HTTPServer", "http_server"),
        ("already_snake", "already_snake"),
        ("value", "value"),
    ],
)
def test_to_snake_case(raw, expected):
    assert to_snake_case(raw) == expected


def test_minimal_request(builder):
    pt = builder.build(_req(appVersion="v1.2.0"), None)
    assert pt == TelemetryPoint(MEASUREMENT, {"app_version": "v1.2.0"}, {"value": 1}, 42)


def test_location_tags(builder):
    loc = Location(city="Taipei", country="Taiwan", country_iso_code="TW")
    pt = builder.build(_req(appVersion="v1.2.0"), loc)
    assert pt.tags == {
        "app_version": "v1.2.0",
        "city": "Taipei",
        "country": "Taiwan",
        "country_isocode": "TW",
    }


def test_schema_accepted_extras_are_snake_cased(builder):
    pt = builder.build(
        _req(
            appVersion="v1.2.0",
            extraTagInfo={"kubernetesVersion": "v1.27.1", "platform": "linux"},
            extraFieldInfo={"nodeCount": 3.0, "hostKernelRelease": "5.15.0", "isV2DataEngineEnabled": False},
        ),
        None,
    )
    assert pt.tags == {"app_version": "v1.2.0", "kubernetes_version": "v1.27.1", "platform": "linux"}
    assert pt.fields == {
        "value": 1,
        "node_count": 3.0,
        "host_kernel_release": "5.15.0",
        "is_v2_data_engine_enabled": False,
    }


def test_unknown_and_invalid_extras_are_dropped(builder):
    pt = builder.build(
        _req(
            appVersion="v1.2.0",
            extraTagInfo={"kubernetesVersion": "x" * 21, "unknownTag": "a"},
            extraFieldInfo={"nodeCount": 3, "unknownField": 1.0, "isV2DataEngineEnabled": "yes"},
        ),
        None,
    )
    assert pt.tags == {"app_version": "v1.2.0"}
    assert pt.fields == {"value": 1}


def test_deprecated_extra_info_merges_into_tags(builder):
    pt = builder.build(
        _req(
            appVersion="v1.2.0",
            extraInfo={"kubernetesVersion": "v1.25.0", "platform": "windows"},
            extraTagInfo={"kubernetesVersion": "v1.27.1"},
        ),
        None,
    )
    assert pt.tags["kubernetes_version"] == "v1.27.1"
    assert pt.tags["platform"] == "windows"


def test_invalid_app_version_discards_the_point(builder):
    assert builder.build(_req(appVersion="v" + "1" * 30, extraTagInfo={"platform": "linux"}), None) is None


def test_legacy_version_alias(builder):
    assert builder.build(_req(longhornVersion="v1.0.0"), None).tags["app_version"] == "v1.0.0"
    assert builder.build(_req(appVersion="v1.2.0", longhornVersion="v1.0.0"), None).tags["app_version"] == "v1.2.0"


def test_to_influx():
    pt = TelemetryPoint(MEASUREMENT, {"app_version": "v1"}, {"value": 1}, 7)
    assert pt.to_influx() == {
        "measurement": MEASUREMENT,
        "tags": {"app_version": "v1"},
        "fields": {"value": 1},
        "time": 7,
    }
