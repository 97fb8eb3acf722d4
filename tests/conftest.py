"""Shared fakes: an in-memory store and locator standing in for InfluxDB and MaxMind."""
from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional, Sequence

import pytest

from upgrade_responder.config import Config
from upgrade_responder.errors import StoreError
from upgrade_responder.points import Location, TelemetryPoint
from upgrade_responder.schema import load_request_schema
from upgrade_responder.versions import VersionCatalog


class FakeStore:
    def __init__(
        self,
        fail_writes: int = 0,
        tag_rows: Optional[List[List[Any]]] = None,
        field_rows: Optional[List[List[Any]]] = None,
        write_delay_s: float = 0.0,
    ):
        # fail_writes < 0 means every write fails
        self.fail_writes = fail_writes
        self.tag_rows = tag_rows or []
        self.field_rows = field_rows or []
        self.write_delay_s = write_delay_s

        self.write_attempts = 0
        self.batches: List[List[TelemetryPoint]] = []
        self.queries: List[str] = []
        self.databases: List[str] = []
        self.continuous_queries: Dict[str, str] = {}
        self.closed = False
        self._lock = threading.Lock()

    @property
    def points(self) -> List[TelemetryPoint]:
        return [p for b in self.batches for p in b]

    def write_points(self, points: Sequence[TelemetryPoint], database: str) -> None:
        if self.write_delay_s:
            time.sleep(self.write_delay_s)
        with self._lock:
            self.write_attempts += 1
            if self.fail_writes < 0 or self.write_attempts <= self.fail_writes:
                raise StoreError("connection refused")
            self.batches.append(list(points))

    def query(self, statement: str, database: Optional[str] = None) -> List[List[Any]]:
        self.queries.append(statement)
        if statement.startswith("SHOW TAG KEYS"):
            return self.tag_rows
        if statement.startswith("SHOW FIELD KEYS"):
            return self.field_rows
        if statement.startswith("CREATE CONTINUOUS QUERY"):
            name = statement.split()[3]
            existing = self.continuous_queries.get(name)
            if existing is not None and existing != statement:
                raise StoreError("continuous query already exists", already_exists=True)
            self.continuous_queries[name] = statement
        return []

    def create_database(self, name: str) -> None:
        self.databases.append(name)

    def close(self) -> None:
        self.closed = True


class FakeLocator:
    def __init__(self, known: Optional[Dict[str, Location]] = None):
        self.known = known or {}
        self.lookups: List[str] = []
        self.closed = False

    def lookup(self, ip: str) -> Optional[Location]:
        self.lookups.append(ip)
        return self.known.get(ip)

    def close(self) -> None:
        self.closed = True


def make_point(n: int = 0) -> TelemetryPoint:
    return TelemetryPoint(
        measurement="upgrade_request",
        tags={"app_version": f"v1.0.{n}"},
        fields={"value": 1},
        time_ns=1_700_000_000_000_000_000 + n,
    )


def make_config(**overrides: Any) -> Config:
    base = dict(
        response_config_path="response.json",
        request_schema_path="schema.json",
        application_name="longhorn",
        influxdb_url="http://influxdb:8086",
        influxdb_user="",
        influxdb_pass="",
        query_period="1h",
        geodb_path="",
        port=8314,
        cache_sync_interval_s=60.0,
        cache_size=100,
    )
    base.update(overrides)
    return Config(**base)


REQUEST_SCHEMA = {
    "appVersionSchema": {"dataType": "string", "maxLen": 20},
    "extraTagInfoSchema": {
        "kubernetesVersion": {"dataType": "string", "maxLen": 20},
        "platform": {"dataType": "string"},
    },
    "extraFieldInfoSchema": {
        "nodeCount": {"dataType": "float"},
        "hostKernelRelease": {"dataType": "string", "maxLen": 50},
        "isV2DataEngineEnabled": {"dataType": "boolean"},
    },
}

VERSIONS = [
    {"name": "v1.1.0", "releaseDate": "2022-06-01T00:00:00Z", "tags": ["stable"]},
    {"name": "v1.2.0", "releaseDate": "2023-01-01T00:00:00Z", "tags": ["latest", "stable"]},
]


@pytest.fixture
def request_schema():
    return load_request_schema(REQUEST_SCHEMA)


@pytest.fixture
def catalog():
    return VersionCatalog.load(VERSIONS)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
