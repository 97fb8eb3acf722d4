"""
One-time store setup: create the database and install the continuous
(downsampling) queries, including per-tag and per-field queries for keys that
production traffic has already recorded.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .errors import StoreError, UnrecoverableConfigError
from .points import (
    MEASUREMENT,
    TAG_APP_VERSION,
    TAG_LOCATION_COUNTRY_ISO_CODE,
    VALUE_FIELD_KEY,
    to_snake_case,
)
from .store import Store

logger = logging.getLogger(__name__)

CQ_NAME_FMT = "cq_by_{}_down_sampling"
MEASUREMENT_COUNT_FMT = "by_{}_count_down_sampling"
MEASUREMENT_MEAN_FMT = "by_{}_mean_down_sampling"

MEASUREMENT_DOWN_SAMPLING = "upgrade_request_down_sampling"
MEASUREMENT_BY_APP_VERSION = "by_app_version_down_sampling"
MEASUREMENT_BY_COUNTRY_CODE = "by_country_code_down_sampling"

CQ_DOWN_SAMPLING = "cq_upgrade_request_down_sampling"
CQ_BY_APP_VERSION = "cq_by_app_version_down_sampling"
CQ_BY_COUNTRY_CODE = "cq_by_country_code_down_sampling"

# covered by the fixed queries above
EXCLUDED_TAG_KEYS = frozenset({TAG_APP_VERSION, TAG_LOCATION_COUNTRY_ISO_CODE})

# field keys reported without a type are counted
DEFAULT_FIELD_TYPE = "unsigned"


def _cq(name: str, database: str, select: str, group_by: str) -> str:
    return f"CREATE CONTINUOUS QUERY {name} ON {database} BEGIN {select} GROUP BY {group_by} END"


def keys_from_rows(rows: List[List[Any]], exclude: frozenset = frozenset()) -> Dict[str, str]:
    """SHOW TAG/FIELD KEYS rows -> {key: data type}."""
    keys: Dict[str, str] = {}
    for row in rows:
        if not row:
            continue
        key = str(row[0])
        if key in exclude:
            continue
        keys[key] = str(row[1]) if len(row) > 1 else DEFAULT_FIELD_TYPE
    return keys


class AggregationBootstrapper:
    def __init__(self, store: Store, database: str, period: str):
        self.store = store
        self.database = database
        self.period = period

    def run(self) -> List[str]:
        """Create the database and every continuous query; returns the query names."""
        self.ensure_database()
        statements = self.build_statements(self.discover_tag_keys(), self.discover_field_keys())
        self.install(statements)
        return list(statements)

    def ensure_database(self) -> None:
        self.store.create_database(self.database)
        logger.debug("Database %s is either created or already exists", self.database)

    def discover_tag_keys(self) -> List[str]:
        try:
            rows = self.store.query(f"SHOW TAG KEYS FROM {MEASUREMENT}", database=self.database)
        except StoreError as e:
            raise StoreError(f"failed to get all tag keys from {MEASUREMENT}: {e}") from e
        return list(keys_from_rows(rows, EXCLUDED_TAG_KEYS))

    def discover_field_keys(self) -> Dict[str, str]:
        try:
            rows = self.store.query(f"SHOW FIELD KEYS FROM {MEASUREMENT}", database=self.database)
        except StoreError as e:
            raise StoreError(f"failed to get all field keys from {MEASUREMENT}: {e}") from e
        return keys_from_rows(rows)

    def build_statements(
        self,
        tag_keys: Optional[List[str]] = None,
        field_keys: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        db, period = self.database, self.period
        count_value = f"SELECT count({VALUE_FIELD_KEY}) as total"

        statements: Dict[str, str] = {
            CQ_DOWN_SAMPLING: _cq(
                CQ_DOWN_SAMPLING, db,
                f"{count_value} INTO {MEASUREMENT_DOWN_SAMPLING} FROM {MEASUREMENT}",
                f"time({period})",
            ),
            CQ_BY_APP_VERSION: _cq(
                CQ_BY_APP_VERSION, db,
                f"{count_value} INTO {MEASUREMENT_BY_APP_VERSION} FROM {MEASUREMENT}",
                f"time({period}),{TAG_APP_VERSION}",
            ),
            CQ_BY_COUNTRY_CODE: _cq(
                CQ_BY_COUNTRY_CODE, db,
                f"{count_value} INTO {MEASUREMENT_BY_COUNTRY_CODE} FROM {MEASUREMENT}",
                f"time({period}),{TAG_LOCATION_COUNTRY_ISO_CODE}",
            ),
        }

        for raw_tag in tag_keys or []:
            tag = to_snake_case(raw_tag)
            if tag in EXCLUDED_TAG_KEYS:
                continue
            name = CQ_NAME_FMT.format(tag)
            statements[name] = _cq(
                name, db,
                f"{count_value} INTO {MEASUREMENT_COUNT_FMT.format(tag)} FROM {MEASUREMENT}",
                f"time({period}),{tag}",
            )

        for raw_key, data_type in (field_keys or {}).items():
            key = to_snake_case(raw_key)
            name = CQ_NAME_FMT.format(key)
            if data_type == "float":
                select = f"SELECT MEAN({key}) AS total INTO {MEASUREMENT_MEAN_FMT.format(key)} FROM {MEASUREMENT}"
            elif data_type == "boolean":
                select = (
                    f"SELECT COUNT({key}) AS total INTO {MEASUREMENT_COUNT_FMT.format(key)} "
                    f"FROM {MEASUREMENT} WHERE {key} = true"
                )
            else:
                select = f"SELECT COUNT({key}) AS total INTO {MEASUREMENT_COUNT_FMT.format(key)} FROM {MEASUREMENT}"
            statements[name] = _cq(name, db, select, f"time({period})")

        return statements

    def install(self, statements: Dict[str, str]) -> None:
        for name, statement in statements.items():
            try:
                self.store.query(statement, database=self.database)
            except StoreError as e:
                if e.already_exists:
                    raise UnrecoverableConfigError(name, self.database, e) from e
                raise
            logger.debug("Created continuous query %s", name)
        logger.info("Installed %d continuous queries on %s", len(statements), self.database)
