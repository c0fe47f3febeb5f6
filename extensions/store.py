"""Registry store for installed extensions.

Persists one record per slug plus the ordered list of active slugs.

Storage structure (``JsonRegistryStore``):
    ~/.extman/registry.json
    {
        "extensions": {"<slug>": {...record...}},
        "active": ["<slug>", ...]
    }
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from schemas.extension import InstalledExtensionRecord

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = Path.home() / ".extman" / "registry.json"


class RegistryCorruptError(Exception):
    """Raised when the registry file cannot be parsed."""

    pass


class RegistryStore(ABC):
    """Key-value contract for installed-extension records.

    Every write is atomic on its own. Records handed out are copies; changes
    only reach the store through ``put``.
    """

    @abstractmethod
    def get(self, slug: str) -> InstalledExtensionRecord | None:
        """Get the record for a slug, or None."""

    @abstractmethod
    def put(self, record: InstalledExtensionRecord) -> None:
        """Insert or replace the record keyed by ``record.slug``."""

    @abstractmethod
    def delete(self, slug: str) -> None:
        """Remove a record; missing slugs are ignored."""

    @abstractmethod
    def list_all(self) -> list[InstalledExtensionRecord]:
        """All records in insertion order."""

    @abstractmethod
    def get_active_slugs(self) -> list[str]:
        """Ordered active-set."""

    @abstractmethod
    def set_active_slugs(self, slugs: list[str]) -> None:
        """Replace the active-set, dropping duplicates but keeping order."""


def _dedupe(slugs: list[str]) -> list[str]:
    return list(dict.fromkeys(slugs))


class InMemoryRegistryStore(RegistryStore):
    """Registry held in process memory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, InstalledExtensionRecord] = {}
        self._active: list[str] = []

    def get(self, slug: str) -> InstalledExtensionRecord | None:
        with self._lock:
            record = self._records.get(slug)
            return record.model_copy(deep=True) if record else None

    def put(self, record: InstalledExtensionRecord) -> None:
        with self._lock:
            self._records[record.slug] = record.model_copy(deep=True)

    def delete(self, slug: str) -> None:
        with self._lock:
            self._records.pop(slug, None)

    def list_all(self) -> list[InstalledExtensionRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]

    def get_active_slugs(self) -> list[str]:
        with self._lock:
            return list(self._active)

    def set_active_slugs(self, slugs: list[str]) -> None:
        with self._lock:
            self._active = _dedupe(slugs)


class JsonRegistryStore(InMemoryRegistryStore):
    """Registry persisted to a single JSON document.

    The whole document is rewritten through a temporary file and
    ``os.replace`` on every write, so readers never see a half-written file.

    Example:
        >>> store = JsonRegistryStore(Path("~/.extman/registry.json").expanduser())
        >>> store.get_active_slugs()
        []
    """

    def __init__(self, path: Path | None = None):
        """Initialize the store, loading any existing registry file.

        Args:
            path: Registry file (default: ~/.extman/registry.json).

        Raises:
            RegistryCorruptError: If the file exists but cannot be parsed.
        """
        super().__init__()
        self.path = Path(path or DEFAULT_REGISTRY_PATH)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryCorruptError(f"Cannot read registry {self.path}: {e}")

        if not isinstance(data, dict):
            raise RegistryCorruptError(f"Registry {self.path} must be a JSON object")

        try:
            self._records = {
                slug: InstalledExtensionRecord.model_validate({**raw, "slug": slug})
                for slug, raw in data.get("extensions", {}).items()
            }
        except (ValidationError, TypeError) as e:
            raise RegistryCorruptError(f"Invalid record in registry {self.path}: {e}")

        self._active = _dedupe([str(s) for s in data.get("active", [])])
        logger.debug(
            "Loaded %d extension records (%d active) from %s",
            len(self._records),
            len(self._active),
            self.path,
        )

    def _save(
        self, records: dict[str, InstalledExtensionRecord], active: list[str]
    ) -> None:
        document: dict[str, Any] = {
            "extensions": {
                slug: record.model_dump(mode="json") for slug, record in records.items()
            },
            "active": active,
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    # Memory is only updated once the file write has landed.

    def put(self, record: InstalledExtensionRecord) -> None:
        with self._lock:
            records = {**self._records, record.slug: record.model_copy(deep=True)}
            self._save(records, self._active)
            self._records = records

    def delete(self, slug: str) -> None:
        with self._lock:
            if slug not in self._records:
                return
            records = {k: v for k, v in self._records.items() if k != slug}
            self._save(records, self._active)
            self._records = records

    def set_active_slugs(self, slugs: list[str]) -> None:
        with self._lock:
            active = _dedupe(slugs)
            self._save(self._records, active)
            self._active = active
