"""
Time-series store collaborator.

The rest of the service only depends on the Store protocol; InfluxStore adapts
an InfluxDB 1.x server through the `influxdb` client. All calls are blocking and
are run off the event loop by their callers.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Sequence
from urllib.parse import urlparse

from influxdb import InfluxDBClient
from influxdb.exceptions import InfluxDBClientError, InfluxDBServerError

from .errors import ConfigurationError, StoreError
from .points import TelemetryPoint

logger = logging.getLogger(__name__)

PRECISION_NANOSECOND = "n"


class Store(Protocol):
    def write_points(self, points: Sequence[TelemetryPoint], database: str) -> None: ...

    def query(self, statement: str, database: Optional[str] = None) -> List[List[Any]]: ...

    def create_database(self, name: str) -> None: ...

    def close(self) -> None: ...


def is_already_exists_error(err: BaseException) -> bool:
    return "already exists" in str(err).lower()


def _wrap(err: Exception, what: str) -> StoreError:
    msg = f"{what}: {err}"
    return StoreError(msg, already_exists=is_already_exists_error(err))


class InfluxStore:
    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        precision: str = PRECISION_NANOSECOND,
        timeout_s: float = 10.0,
    ):
        u = urlparse(url)
        if not u.hostname:
            raise ConfigurationError(f"invalid InfluxDB url {url!r}")
        ssl = u.scheme == "https"
        self.precision = precision
        self.client = InfluxDBClient(
            host=u.hostname,
            port=u.port or (443 if ssl else 8086),
            username=username or "root",
            password=password or "root",
            ssl=ssl,
            verify_ssl=False,
            timeout=timeout_s,
            path=u.path.strip("/"),
        )
        logger.debug("InfluxDB client created for %s://%s", u.scheme, u.netloc.rpartition("@")[2])

    def write_points(self, points: Sequence[TelemetryPoint], database: str) -> None:
        try:
            self.client.write_points(
                [p.to_influx() for p in points],
                time_precision=self.precision,
                database=database,
            )
        except (InfluxDBClientError, InfluxDBServerError, OSError) as e:
            raise _wrap(e, f"failed to write {len(points)} points to {database}") from e

    def query(self, statement: str, database: Optional[str] = None) -> List[List[Any]]:
        """Run one statement and return the value rows of every series."""
        # InfluxDB only accepts SELECT and SHOW over GET
        method = "GET" if statement.lstrip().upper().startswith(("SELECT", "SHOW")) else "POST"
        try:
            result = self.client.query(statement, database=database, method=method)
        except (InfluxDBClientError, InfluxDBServerError, OSError) as e:
            raise _wrap(e, f"query {statement!r} failed") from e

        rows: List[List[Any]] = []
        for series in (result.raw or {}).get("series", []) or []:
            rows.extend(series.get("values", []) or [])
        return rows

    def create_database(self, name: str) -> None:
        try:
            self.client.create_database(name)
        except (InfluxDBClientError, InfluxDBServerError, OSError) as e:
            if is_already_exists_error(e):
                return
            raise _wrap(e, f"failed to create database {name}") from e

    def close(self) -> None:
        try:
            self.client.close()
        except Exception as e:
            logger.debug("Failed to close InfluxDB connection: %s", e)
        else:
            logger.debug("InfluxDB connection closed")
