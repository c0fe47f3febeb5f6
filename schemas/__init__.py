"""Schemas module for extension records and marketplace data.

Provides Pydantic models for:
- Installed extension records
- Marketplace catalog entries
- Search results
"""

from .extension import (
    ExtensionStatus,
    InstalledExtensionRecord,
    MarketplaceExtensionInfo,
    SearchResults,
)

__all__ = [
    "ExtensionStatus",
    "InstalledExtensionRecord",
    "MarketplaceExtensionInfo",
    "SearchResults",
]
