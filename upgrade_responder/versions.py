"""
Version catalog: the configured set of versions advertised to clients.

Loaded once at startup from the response config and read-only afterwards.
Any malformed entry aborts the whole load.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, ValidationError
from .models import ResponseConfig, Version

logger = logging.getLogger(__name__)

VERSION_TAG_LATEST = "latest"

# permissive semver: optional "v", 1-3 numeric parts, optional prerelease/build
_SEMVER = re.compile(
    r"^v?(0|[1-9]\d*)(?:\.(0|[1-9]\d*))?(?:\.(0|[1-9]\d*))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
_RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_semver(v: str) -> Tuple[int, int, int, str]:
    m = _SEMVER.match(v or "")
    if not m:
        raise ValueError(f"invalid semantic version {v!r}")
    major, minor, patch = (int(x) if x is not None else 0 for x in m.group(1, 2, 3))
    return major, minor, patch, m.group(4) or ""


def parse_rfc3339(t: str) -> datetime:
    if not _RFC3339.match(t or ""):
        raise ValueError(f"invalid RFC3339 time {t!r}")
    s = t.upper().replace("Z", "+00:00")
    # fromisoformat only accepts up to microseconds
    head, dot, rest = s.partition(".")
    if dot:
        frac = re.match(r"\d+", rest).group(0)
        s = f"{head}.{frac[:6].ljust(6, '0')}{rest[len(frac):]}"
    try:
        return datetime.fromisoformat(s)
    except ValueError as e:
        raise ValueError(f"invalid RFC3339 time {t!r}: {e}") from e


class VersionCatalog:
    """name -> Version and tag -> [Version] (insertion order)."""

    def __init__(self, by_name: Dict[str, Version], by_tag: Dict[str, List[Version]]):
        self._by_name = by_name
        self._by_tag = by_tag

    @classmethod
    def load(cls, versions: Iterable[Union[Version, Dict[str, Any]]]) -> "VersionCatalog":
        by_name: Dict[str, Version] = {}
        by_tag: Dict[str, List[Version]] = {}

        for i, raw in enumerate(versions):
            try:
                v = raw if isinstance(raw, Version) else Version.model_validate(raw)
            except PydanticValidationError as e:
                raise ValidationError(f"invalid version entry #{i}: {e}") from e

            if not v.tags:
                raise ValidationError(f"invalid empty tags for version {v.name!r}")
            if v.name in by_name:
                raise ValidationError(f"invalid duplicate name {v.name}")
            try:
                parse_semver(v.name)
                if v.min_upgradable_version:
                    parse_semver(v.min_upgradable_version)
                parse_rfc3339(v.release_date)
            except ValueError as e:
                raise ValidationError(f"invalid version {v.name!r}: {e}") from e

            for tag in v.tags:
                by_tag.setdefault(tag, []).append(v)
            by_name[v.name] = v

        if not by_tag.get(VERSION_TAG_LATEST):
            raise ValidationError(f"no version tagged {VERSION_TAG_LATEST!r} specified")

        return cls(by_name, by_tag)

    def versions(self) -> List[Version]:
        return list(self._by_name.values())

    def get(self, name: str) -> Optional[Version]:
        return self._by_name.get(name)

    def with_tag(self, tag: str) -> List[Version]:
        return list(self._by_tag.get(tag, []))

    def latest(self) -> Version:
        return self._by_tag[VERSION_TAG_LATEST][0]

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


def load_response_config(path: str) -> VersionCatalog:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"fail to open response config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"fail to decode response config {path}: {e}") from e

    try:
        cfg = ResponseConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid response config {path}: {e}") from e

    catalog = VersionCatalog.load(cfg.versions)
    logger.info("Loaded %d versions from %s (latest=%s)", len(catalog), path, catalog.latest().name)
    return catalog
