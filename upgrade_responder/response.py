from __future__ import annotations

import logging

from .config import parse_duration
from .models import CheckUpgradeRequest, CheckUpgradeResponse
from .versions import VersionCatalog

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_INTERVAL_MINUTES = 60


def request_interval_minutes(period: str) -> int:
    try:
        seconds = parse_duration(period)
    except ValueError as e:
        logger.error("fail to parse query period %r while building upgrade response: %s", period, e)
        return DEFAULT_REQUEST_INTERVAL_MINUTES
    # truncates toward zero
    return int(seconds / 60)


class UpgradeResponseGenerator:
    def __init__(self, catalog: VersionCatalog, query_period: str):
        self.catalog = catalog
        self.query_period = query_period

    def generate(self, request: CheckUpgradeRequest) -> CheckUpgradeResponse:
        # every configured version is returned regardless of request.version
        return CheckUpgradeResponse(
            versions=self.catalog.versions(),
            request_interval_in_minutes=request_interval_minutes(self.query_period),
        )
