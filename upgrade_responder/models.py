from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# legacy request fields that carried the app version before `appVersion`, in precedence order
LEGACY_VERSION_FIELDS = ("longhorn_version",)


class Version(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field("", description="semantic version, e.g. v1.2.0")
    release_date: str = Field("", alias="releaseDate", description="RFC3339 timestamp")
    min_upgradable_version: str = Field("", alias="minUpgradableVersion")
    tags: List[str] = Field(default_factory=list)
    extra_info: Dict[str, str] = Field(default_factory=dict, alias="extraInfo")

    @field_validator("min_upgradable_version", "release_date", mode="before")
    @classmethod
    def _null_str(cls, v: Any) -> Any:
        # configs written by Go tooling carry null for unset values
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("extra_info", mode="before")
    @classmethod
    def _null_map(cls, v: Any) -> Any:
        return {} if v is None else v


class ResponseConfig(BaseModel):
    versions: List[Version] = Field(default_factory=list)


class CheckUpgradeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_version: str = Field("", alias="appVersion")
    longhorn_version: str = Field("", alias="longhornVersion")

    extra_tag_info: Optional[Dict[str, str]] = Field(default=None, alias="extraTagInfo")
    extra_field_info: Optional[Dict[str, Any]] = Field(default=None, alias="extraFieldInfo")

    # Deprecated: replaced by extraTagInfo
    extra_info: Optional[Dict[str, str]] = Field(default=None, alias="extraInfo")

    @property
    def version(self) -> str:
        """`appVersion` wins; otherwise the first non-empty legacy alias."""
        if self.app_version:
            return self.app_version
        for name in LEGACY_VERSION_FIELDS:
            value = getattr(self, name)
            if value:
                return value
        return ""

    def tag_info(self) -> Dict[str, str]:
        """Deprecated extraInfo merged under extraTagInfo (extraTagInfo wins)."""
        merged: Dict[str, str] = {}
        for m in (self.extra_info, self.extra_tag_info):
            if m:
                merged.update(m)
        return merged

    def field_info(self) -> Dict[str, Any]:
        return dict(self.extra_field_info or {})


class CheckUpgradeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    versions: List[Version] = Field(default_factory=list)
    request_interval_in_minutes: int = Field(0, alias="requestIntervalInMinutes")
