"""Extension schemas.

Installed-extension records persisted by the registry store, and the
read-only catalog entries returned by the remote marketplace.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class ExtensionStatus(str, Enum):
    """Lifecycle status of an extension."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    INSTALLED = "installed"  # Legacy alias of INACTIVE, normalized on read
    UPDATE_AVAILABLE = "update_available"  # Derived, never stored
    NOT_INSTALLED = "not_installed"  # No record


class InstalledExtensionRecord(BaseModel):
    """One installed extension, keyed by slug."""

    id: str = Field("", description="Remote catalog identifier")
    slug: str = Field(..., description="Unique extension key")
    name: str = Field("", description="Display name")
    version: str = Field("1.0.0", description="Installed version")
    description: str = Field("", description="Short description")
    author: str = Field("", description="Author name")
    author_uri: str = Field("", description="Author homepage")
    category: str = Field("general", description="Catalog category")
    status: ExtensionStatus = Field(ExtensionStatus.INACTIVE, description="Stored status")
    install_path: str = Field("", description="Directory the package was extracted to")
    main_file: str = Field("", description="Entry point, relative to install_path")
    icon: str = Field("", description="Icon URL")
    is_premium: bool = Field(False, description="Requires a license to activate")
    license_key: str | None = Field(None, description="License key for premium extensions")
    license_expires_at: datetime | None = Field(None, description="License expiry")
    installed_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    latest_known_version: str | None = Field(
        None, description="Latest version reported by the last update check"
    )
    settings: dict[str, Any] = Field(default_factory=dict)
    manifest: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if value in (ExtensionStatus.INSTALLED, ExtensionStatus.INSTALLED.value):
            return ExtensionStatus.INACTIVE
        return value

    @field_validator("license_expires_at", "installed_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_active(self) -> bool:
        return self.status == ExtensionStatus.ACTIVE


_STR_DEFAULTS = {
    "id": "",
    "version": "1.0.0",
    "requires_runtime": "0",
    "requires_platform": "0",
    "requires_app": "0",
}


class MarketplaceExtensionInfo(BaseModel):
    """Extension listing from the remote catalog."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    slug: str
    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    long_description: str = ""
    author: str = ""
    author_uri: str = ""
    category: str = "general"
    tags: list[str] = Field(default_factory=list)
    icon: str = ""
    screenshots: list[str] = Field(default_factory=list)
    download_url: str = ""

    # Minimum host versions; "0" means no requirement
    requires_runtime: str = "0"
    requires_platform: str = "0"
    requires_app: str = "0"

    is_premium: bool = False
    price: float = 0.0
    currency: str = "USD"

    # Display-only
    rating: float = 0.0
    rating_count: int = 0
    active_installs: int = 0
    last_updated: str = ""
    features: list[str] = Field(default_factory=list)
    documentation_url: str = ""
    support_url: str = ""
    changelog: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        name = info.field_name
        if name in _STR_DEFAULTS:
            if value is None or value == "":
                return _STR_DEFAULTS[name]
            return str(value)
        if value is None and name != "slug":
            return cls.model_fields[name].get_default(call_default_factory=True)
        return value

    @property
    def is_free(self) -> bool:
        return not self.is_premium


class SearchResults(BaseModel):
    """One page of marketplace search results."""

    extensions: list[MarketplaceExtensionInfo] = Field(default_factory=list)
    total: int = 0
    pages: int = 1

    @field_validator("*", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value
