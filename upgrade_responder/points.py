from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .models import CheckUpgradeRequest
from .schema import (
    EXTRA_INFO_TYPE_FIELD,
    EXTRA_INFO_TYPE_TAG,
    FieldValue,
    RequestSchema,
    typed_field_value,
    validate,
    validate_extra_info,
)

logger = logging.getLogger(__name__)

MEASUREMENT = "upgrade_request"

TAG_APP_VERSION = "app_version"
TAG_LOCATION_CITY = "city"
TAG_LOCATION_COUNTRY = "country"
TAG_LOCATION_COUNTRY_ISO_CODE = "country_isocode"

# dummy field used to count the number of points
VALUE_FIELD_KEY = "value"
VALUE_FIELD_VALUE = 1

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(s: str) -> str:
    snake = _FIRST_CAP.sub(r"\1_\2", s)
    snake = _ALL_CAP.sub(r"\1_\2", snake)
    return snake.lower()


@dataclass(frozen=True)
class Location:
    city: str = ""
    country: str = ""
    country_iso_code: str = ""


@dataclass
class TelemetryPoint:
    measurement: str
    tags: Dict[str, str]
    fields: Dict[str, Any]
    time_ns: int = field(default_factory=time.time_ns)

    def to_influx(self) -> Dict[str, Any]:
        return {
            "measurement": self.measurement,
            "tags": dict(self.tags),
            "fields": dict(self.fields),
            "time": self.time_ns,
        }


class TelemetryPointBuilder:
    def __init__(self, request_schema: RequestSchema, clock: Callable[[], int] = time.time_ns):
        self.request_schema = request_schema
        self.clock = clock

    def build(self, req: CheckUpgradeRequest, location: Optional[Location]) -> Optional[TelemetryPoint]:
        """
        Returns None when the app version itself fails its schema: nothing is
        recorded for such a request. Invalid or unknown extra keys are dropped.
        """
        app_version = req.version
        if not validate(self.request_schema.app_version_schema, app_version):
            logger.debug("Dropping telemetry for request with invalid app version %r", app_version[:64])
            return None

        tags: Dict[str, str] = {TAG_APP_VERSION: app_version}
        for k, v in req.tag_info().items():
            if validate_extra_info(self.request_schema, k, v, EXTRA_INFO_TYPE_TAG):
                tags[to_snake_case(k)] = v

        if location is not None:
            tags[TAG_LOCATION_CITY] = location.city
            tags[TAG_LOCATION_COUNTRY] = location.country
            tags[TAG_LOCATION_COUNTRY_ISO_CODE] = location.country_iso_code

        fields: Dict[str, Any] = {VALUE_FIELD_KEY: VALUE_FIELD_VALUE}
        for k, v in req.field_info().items():
            if not validate_extra_info(self.request_schema, k, v, EXTRA_INFO_TYPE_FIELD):
                continue
            typed: Optional[FieldValue] = typed_field_value(v)
            if typed is not None:
                fields[to_snake_case(k)] = typed

        return TelemetryPoint(measurement=MEASUREMENT, tags=tags, fields=fields, time_ns=self.clock())
