"""Package manifest for extensions.

Every package may ship a ``manifest.json`` at its root. The manifest is kept
as an opaque mapping; only the fields the lifecycle manager inspects get
typed accessors. Absent fields fall back to marketplace metadata.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"


class PackageManifest(Mapping[str, Any]):
    """Read-only view over a package's ``manifest.json``.

    Example:
        >>> manifest = PackageManifest.from_path(Path("/srv/extensions/seo-kit"))
        >>> manifest.version
        '1.2.0'
        >>> manifest.main_file is None
        True
    """

    def __init__(self, data: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = dict(data or {})

    @classmethod
    def from_path(cls, install_path: Path) -> PackageManifest:
        """Load the manifest from a package directory.

        A missing, unreadable or non-object manifest yields an empty
        manifest rather than an error.

        Args:
            install_path: Root directory of an extracted package.

        Returns:
            Parsed manifest (possibly empty).
        """
        manifest_path = Path(install_path) / MANIFEST_FILENAME
        if not manifest_path.is_file():
            return cls()

        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", manifest_path, e)
            return cls()

        if not isinstance(data, dict):
            logger.warning("Ignoring manifest %s: not a JSON object", manifest_path)
            return cls()

        return cls(data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def _text(self, key: str) -> str | None:
        value = self._data.get(key)
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None

    @property
    def name(self) -> str | None:
        return self._text("name")

    @property
    def version(self) -> str | None:
        return self._text("version")

    @property
    def description(self) -> str | None:
        return self._text("description")

    @property
    def author(self) -> str | None:
        return self._text("author")

    @property
    def author_uri(self) -> str | None:
        return self._text("author_uri")

    @property
    def category(self) -> str | None:
        return self._text("category")

    @property
    def main_file(self) -> str | None:
        return self._text("main_file")

    @property
    def namespace(self) -> str | None:
        return self._text("namespace")

    def to_dict(self) -> dict[str, Any]:
        """Copy of the raw manifest data."""
        return copy.deepcopy(self._data)

    def __repr__(self) -> str:
        return f"PackageManifest(name={self.name!r}, version={self.version!r})"
