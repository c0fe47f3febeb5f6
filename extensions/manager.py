"""Extension lifecycle manager.

Drives each extension through ``NotInstalled -> Inactive <-> Active``:

- install: fetch metadata, check requirements and license, download, extract,
  record the extension as inactive
- activate / deactivate: run hooks, load or unload the entry point, keep the
  stored status and the active-set in step
- update: back up the install directory, replace it, and roll back on failure
- uninstall: deactivate, run the uninstall hook, delete files and record

Public operations hold a per-slug lock and return an ``OperationResult``;
expected failures never escape as exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from extensions.errors import (
    ActivationFailedError,
    AlreadyInstalledError,
    HookFailedError,
    LicenseInvalidError,
    LicenseRequiredError,
    LifecycleError,
    NotFoundError,
    OperationInProgressError,
    OperationResult,
)
from extensions.events import (
    EXTENSION_ACTIVATED,
    EXTENSION_DEACTIVATED,
    EXTENSION_INSTALLED,
    EXTENSION_LOADED,
    EXTENSION_UNINSTALLED,
    EXTENSION_UPDATED,
    EventDispatcher,
)
from extensions.fetcher import PackageFetcher
from extensions.license import LicenseValidator, is_license_valid
from extensions.loader import ExtensionLoader, ExtensionLoadError, Hook, HookError
from extensions.locks import SlugLocks
from extensions.marketplace import MarketplaceClient
from extensions.requirements import RequirementChecker, compare_versions
from extensions.store import RegistryStore
from schemas.extension import ExtensionStatus, InstalledExtensionRecord, utc_now

logger = logging.getLogger(__name__)


class ExtensionManager:
    """Install, activate, update and remove extensions.

    Example:
        >>> manager = ExtensionManager(store, client, validator, fetcher, checker)
        >>> result = manager.install("seo-kit")
        >>> result.success, result.record.status
        (True, <ExtensionStatus.INACTIVE: 'inactive'>)
        >>> manager.activate("seo-kit").success
        True
    """

    def __init__(
        self,
        store: RegistryStore,
        marketplace: MarketplaceClient,
        licenses: LicenseValidator,
        fetcher: PackageFetcher,
        requirements: RequirementChecker,
        loader: ExtensionLoader | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the manager.

        Args:
            store: Registry of installed extensions and the active-set.
            marketplace: Remote catalog client.
            licenses: License validator for premium extensions.
            fetcher: Package downloader/extractor.
            requirements: Host requirement checker.
            loader: Entry point and hook loader.
            events: Dispatcher notified after each transition.
            clock: Returns the current aware datetime.
        """
        self.store = store
        self.marketplace = marketplace
        self.licenses = licenses
        self.fetcher = fetcher
        self.requirements = requirements
        self.loader = loader or ExtensionLoader()
        self.events = events or EventDispatcher()
        self.locks = SlugLocks()
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return self._clock()

    def _run(
        self, slug: str, operation: str, func: Callable[[], OperationResult]
    ) -> OperationResult:
        """Run an operation under the slug lock, mapping lifecycle errors to results."""
        try:
            with self.locks.hold(slug):
                return func()
        except LifecycleError as e:
            logger.error("Failed to %s %s: %s", operation, slug, e.message)
            return OperationResult.fail(e)

    def _require(self, slug: str) -> InstalledExtensionRecord:
        record = self.store.get(slug)
        if record is None:
            raise NotFoundError(f"Extension '{slug}' is not installed")
        return record

    def _install_path(self, record: InstalledExtensionRecord) -> Path:
        if record.install_path:
            return Path(record.install_path)
        return self.fetcher.extensions_dir / record.slug

    # Install

    def install(self, slug: str, license_key: str | None = None) -> OperationResult:
        """Install an extension from the marketplace.

        The extension ends up inactive. Nothing is recorded and no files are
        left behind unless every step succeeds.

        Args:
            slug: Extension slug.
            license_key: Required for premium extensions.

        Returns:
            Result carrying the new record on success.
        """
        return self._run(slug, "install", lambda: self._install(slug, license_key))

    def _install(self, slug: str, license_key: str | None) -> OperationResult:
        if self.store.get(slug) is not None:
            raise AlreadyInstalledError(f"Extension '{slug}' is already installed")

        info = self.marketplace.fetch_info(slug)
        self.requirements.check(info)

        expires_at = None
        if info.is_premium:
            if not license_key:
                raise LicenseRequiredError("License key required for premium extension")
            validation = self.licenses.validate(slug, license_key, premium=True)
            if not validation.valid:
                raise LicenseInvalidError(validation.message)
            expires_at = validation.expires_at
        else:
            license_key = None

        url = self.marketplace.download_url(slug, license_key, self.licenses.site_url)
        archive = self.fetcher.download(url)
        install_path = None
        try:
            install_path = self.fetcher.extract(archive, slug)
            manifest = self.fetcher.parse_manifest(install_path)

            now = self._now()
            record = InstalledExtensionRecord(
                id=info.id,
                slug=slug,
                name=manifest.name or info.name or slug,
                version=manifest.version or info.version or "1.0.0",
                description=manifest.description or info.description,
                author=manifest.author or info.author,
                author_uri=manifest.author_uri or info.author_uri,
                category=manifest.category or info.category or "general",
                status=ExtensionStatus.INACTIVE,
                install_path=str(install_path),
                main_file=manifest.main_file or f"{slug}.py",
                icon=info.icon,
                is_premium=info.is_premium,
                license_key=license_key,
                license_expires_at=expires_at,
                installed_at=now,
                updated_at=now,
                manifest=manifest.to_dict(),
            )
            self.store.put(record)
        except BaseException:
            if install_path is not None:
                logger.warning("Removing partially installed files for %s", slug)
                self.fetcher.remove_tree(install_path)
            raise
        finally:
            archive.unlink(missing_ok=True)

        logger.info("Installed extension %s %s", slug, record.version)
        self.events.notify(EXTENSION_INSTALLED, slug, record)
        return OperationResult.ok(f'Extension "{record.name}" installed successfully', record)

    # Activation

    def activate(self, slug: str) -> OperationResult:
        """Activate an installed extension.

        Premium extensions need a stored, unexpired license. The activation
        hook runs first; the extension stays inactive if it or the entry
        point fails.
        """
        def run() -> OperationResult:
            record = self._require(slug)
            if record.is_active:
                logger.info("Extension %s is already active", slug)
                return OperationResult.ok(f'Extension "{record.name}" is already active', record)
            record = self._activate(record)
            return OperationResult.ok(f'Extension "{record.name}" activated successfully', record)

        return self._run(slug, "activate", run)

    def _activate(self, record: InstalledExtensionRecord) -> InstalledExtensionRecord:
        slug = record.slug
        if not is_license_valid(record, self._now()):
            raise LicenseInvalidError("Valid license required to activate premium extension")

        try:
            self.loader.run_hook(record, Hook.ACTIVATION)
            self.loader.load(record)
        except (HookError, ExtensionLoadError) as e:
            self.loader.unload(slug)
            raise ActivationFailedError(f"Activation failed: {e}")

        record.status = ExtensionStatus.ACTIVE
        self.store.put(record)
        self._add_active(slug)

        logger.info("Activated extension %s", slug)
        self.events.notify(EXTENSION_LOADED, slug, record)
        self.events.notify(EXTENSION_ACTIVATED, slug, record)
        return record

    def deactivate(self, slug: str) -> OperationResult:
        """Deactivate an extension. Deactivation hook failures are only logged."""
        def run() -> OperationResult:
            record = self._deactivate(self._require(slug))
            return OperationResult.ok(f'Extension "{record.name}" deactivated successfully', record)

        return self._run(slug, "deactivate", run)

    def _deactivate(self, record: InstalledExtensionRecord) -> InstalledExtensionRecord:
        slug = record.slug
        try:
            self.loader.run_hook(record, Hook.DEACTIVATION)
        except HookError as e:
            logger.warning("%s; deactivating anyway", e)
        self.loader.unload(slug)

        record.status = ExtensionStatus.INACTIVE
        self.store.put(record)
        self._remove_active(slug)

        logger.info("Deactivated extension %s", slug)
        self.events.notify(EXTENSION_DEACTIVATED, slug, record)
        return record

    def _add_active(self, slug: str) -> None:
        active = self.store.get_active_slugs()
        if slug not in active:
            self.store.set_active_slugs([*active, slug])

    def _remove_active(self, slug: str) -> None:
        active = self.store.get_active_slugs()
        if slug in active:
            self.store.set_active_slugs([s for s in active if s != slug])

    # Update

    def update(self, slug: str) -> OperationResult:
        """Update an installed extension to the latest marketplace version.

        The install directory is backed up first and restored if anything
        goes wrong, leaving the stored record untouched. An extension that
        was active is reactivated afterwards either way.

        Returns:
            Result with ``details["previous_version"]`` and
            ``details["reactivated"]`` (None when it was not active).
        """
        return self._run(slug, "update", lambda: self._update(slug))

    def _update(self, slug: str) -> OperationResult:
        record = self._require(slug)
        previous_version = record.version
        was_active = record.is_active
        if was_active:
            record = self._deactivate(record)

        install_path = self._install_path(record)
        backup_path = Path(f"{install_path}_backup_{previous_version}")
        backed_up = self._backup(install_path, backup_path)

        archive = None
        try:
            url = self.marketplace.download_url(slug, record.license_key, self.licenses.site_url)
            archive = self.fetcher.download(url)
            self.fetcher.extract(archive, slug, target_dir=install_path)
            manifest = self.fetcher.parse_manifest(install_path)

            try:
                self.loader.run_hook(record, Hook.UPDATE)
            except HookError as e:
                raise HookFailedError(f"Update failed: {e}")

            updated = record.model_copy(deep=True)
            updated.version = manifest.version or record.latest_known_version or record.version
            updated.updated_at = self._now()
            updated.latest_known_version = None
            updated.manifest = manifest.to_dict()
            self.store.put(updated)
        except BaseException:
            self._restore(install_path, backup_path, backed_up)
            if was_active:
                self._try_reactivate(record)
            raise
        finally:
            if archive is not None:
                archive.unlink(missing_ok=True)

        if backed_up:
            self.fetcher.remove_tree(backup_path)

        record = updated
        reactivated = None
        if was_active:
            reactivated = self._try_reactivate(record)

        logger.info("Updated extension %s %s -> %s", slug, previous_version, record.version)
        self.events.notify(EXTENSION_UPDATED, slug, record)
        return OperationResult.ok(
            f'Extension "{record.name}" updated to version {record.version}',
            record,
            previous_version=previous_version,
            reactivated=reactivated,
        )

    def _backup(self, install_path: Path, backup_path: Path) -> bool:
        if backup_path.exists():
            logger.warning("Removing stale backup %s", backup_path)
            self.fetcher.remove_tree(backup_path)
        if not install_path.exists():
            logger.warning("Install directory %s is missing; nothing to back up", install_path)
            return False
        install_path.rename(backup_path)
        return True

    def _restore(self, install_path: Path, backup_path: Path, backed_up: bool) -> None:
        if install_path.exists():
            self.fetcher.remove_tree(install_path)
        if backed_up:
            backup_path.rename(install_path)
        logger.warning("Rolled back %s", install_path)

    def _try_reactivate(self, record: InstalledExtensionRecord) -> bool:
        try:
            self._activate(record)
        except LifecycleError as e:
            logger.warning("Could not reactivate %s: %s", record.slug, e.message)
            return False
        return True

    # Uninstall

    def uninstall(self, slug: str) -> OperationResult:
        """Remove an extension's files and record.

        Uninstalling a slug that is not installed succeeds without changing
        anything.
        """
        return self._run(slug, "uninstall", lambda: self._uninstall(slug))

    def _uninstall(self, slug: str) -> OperationResult:
        record = self.store.get(slug)
        if record is None:
            return OperationResult.ok(f"Extension '{slug}' is not installed")

        if record.is_active or slug in self.store.get_active_slugs():
            record = self._deactivate(record)

        try:
            self.loader.run_hook(record, Hook.UNINSTALL)
        except HookError as e:
            logger.warning("%s; uninstalling anyway", e)

        self.fetcher.remove_tree(self._install_path(record))
        self.store.delete(slug)

        logger.info("Uninstalled extension %s", slug)
        self.events.notify(EXTENSION_UNINSTALLED, slug, record)
        return OperationResult.ok(f'Extension "{record.name}" uninstalled successfully', record)

    # Updates and licensing

    def check_for_updates(self) -> OperationResult:
        """Ask the marketplace for the latest version of every installed extension.

        Returns:
            Result with ``details["updates"]`` mapping slug to the latest
            version reported, and ``details["skipped"]`` listing slugs that
            were busy.
        """
        records = self.store.list_all()
        if not records:
            return OperationResult.ok("No extensions installed", updates={}, skipped=[])

        try:
            latest = self.marketplace.check_updates([(r.slug, r.version) for r in records])
        except LifecycleError as e:
            logger.warning("Update check failed: %s", e.message)
            return OperationResult.fail(e)

        updates: dict[str, str] = {}
        skipped: list[str] = []
        for slug, version in latest.items():
            try:
                with self.locks.hold(slug):
                    record = self.store.get(slug)
                    if record is None:
                        continue
                    record.latest_known_version = version
                    self.store.put(record)
                    updates[slug] = version
            except OperationInProgressError:
                logger.warning("Skipping update check result for busy extension %s", slug)
                skipped.append(slug)

        available = [
            slug for slug in updates if self.has_update(self.store.get(slug))
        ]
        logger.info("Update check: %d update(s) available", len(available))
        return OperationResult.ok(
            f"{len(available)} update(s) available", updates=updates, skipped=skipped
        )

    def activate_license(self, slug: str, license_key: str) -> OperationResult:
        """Validate a license key and store it on the installed record."""
        def run() -> OperationResult:
            if not license_key:
                raise LicenseRequiredError("License key is required")
            validation = self.licenses.validate(slug, license_key, premium=True)
            if not validation.valid:
                raise LicenseInvalidError(validation.message)

            record = self.store.get(slug)
            if record is not None:
                record.license_key = license_key
                record.license_expires_at = validation.expires_at
                self.store.put(record)
            logger.info("License activated for %s", slug)
            return OperationResult.ok(
                "License activated successfully", record, expires_at=validation.expires_at
            )

        return self._run(slug, "activate license for", run)

    # Boot

    def reconcile_active_set(self) -> list[str]:
        """Make the active-set agree with stored statuses.

        Stored status wins: active records missing from the set are added and
        set members without an active record are dropped.

        Returns:
            The reconciled active-set.
        """
        records = {r.slug: r for r in self.store.list_all()}
        current = self.store.get_active_slugs()

        active = [s for s in current if s in records and records[s].is_active]
        active += [s for s, r in records.items() if r.is_active and s not in active]
        if active != current:
            logger.warning("Active-set out of sync (%s); repairing to %s", current, active)
            self.store.set_active_slugs(active)
        return active

    def load_active_extensions(self) -> list[str]:
        """Load every active extension at startup.

        Extensions without a valid license are skipped; extensions whose entry
        point fails to load are deactivated.

        Returns:
            Slugs that were loaded.
        """
        loaded: list[str] = []
        for slug in self.reconcile_active_set():
            record = self.store.get(slug)
            if record is None:
                continue
            if not is_license_valid(record, self._now()):
                logger.warning("Skipping %s: license missing or expired", slug)
                continue
            try:
                self.loader.load(record)
            except ExtensionLoadError as e:
                logger.error("%s; deactivating", e)
                self.deactivate(slug)
                continue
            loaded.append(slug)
            self.events.notify(EXTENSION_LOADED, slug, record)
        return loaded

    # Queries

    def get_record(self, slug: str) -> InstalledExtensionRecord | None:
        return self.store.get(slug)

    def list_installed(self) -> list[InstalledExtensionRecord]:
        return self.store.list_all()

    def list_active(self) -> list[InstalledExtensionRecord]:
        records = (self.store.get(slug) for slug in self.store.get_active_slugs())
        return [r for r in records if r is not None]

    def is_installed(self, slug: str) -> bool:
        return self.store.get(slug) is not None

    def is_active(self, slug: str) -> bool:
        return slug in self.store.get_active_slugs()

    def has_update(self, record: InstalledExtensionRecord | None) -> bool:
        """True when the last update check reported a newer version."""
        if record is None or not record.latest_known_version:
            return False
        return compare_versions(record.latest_known_version, record.version) > 0

    def status_of(self, slug: str) -> ExtensionStatus:
        record = self.store.get(slug)
        if record is None:
            return ExtensionStatus.NOT_INSTALLED
        if self.has_update(record):
            return ExtensionStatus.UPDATE_AVAILABLE
        return record.status

    def updates_available(self) -> list[InstalledExtensionRecord]:
        return [r for r in self.store.list_all() if self.has_update(r)]
