from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

import maxminddb

from .errors import ConfigurationError
from .points import Location

logger = logging.getLogger(__name__)

HTTP_HEADER_X_FORWARDED_FOR = "X-Forwarded-For"


class Locator(Protocol):
    def lookup(self, ip: str) -> Optional[Location]: ...

    def close(self) -> None: ...


def public_ip_from_forwarded(values: Iterable[str]) -> str:
    """Rightmost entry of the X-Forwarded-For chain (across all header lines)."""
    chain = [p.strip() for v in values for p in v.split(",") if p.strip()]
    return chain[-1] if chain else ""


class MaxMindLocator:
    """IP -> Location backed by a GeoLite2/GeoIP2 City database file."""

    def __init__(self, path: str, language: str = "en"):
        self.path = path
        self.language = language
        try:
            self._reader = maxminddb.open_database(path)
        except (OSError, maxminddb.InvalidDatabaseError) as e:
            raise ConfigurationError(f"fail to open geodb file {path}: {e}") from e
        logger.debug("GeoDB opened: %s", path)

    def lookup(self, ip: str) -> Optional[Location]:
        if not ip:
            return None
        try:
            record = self._reader.get(ip)
        except ValueError as e:
            logger.error("Failed to get location for one ip: %s", e)
            return None
        if not record:
            return None

        city = record.get("city") or {}
        country = record.get("country") or {}
        return Location(
            city=(city.get("names") or {}).get(self.language, ""),
            country=(country.get("names") or {}).get(self.language, ""),
            country_iso_code=country.get("iso_code", ""),
        )

    def close(self) -> None:
        try:
            self._reader.close()
        except Exception as e:
            logger.debug("Failed to close geodb: %s", e)
        else:
            logger.debug("Geodb connection closed")
