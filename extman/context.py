"""Wiring of the lifecycle manager and its collaborators from configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from extensions.events import ALL_EVENTS, EventDispatcher, LifecycleEvent
from extensions.fetcher import PackageFetcher
from extensions.license import LicenseValidator
from extensions.loader import ExtensionLoader
from extensions.manager import ExtensionManager
from extensions.marketplace import MarketplaceClient
from extensions.requirements import HostEnvironment, RequirementChecker
from extensions.store import JsonRegistryStore, RegistryStore
from extman.config import Config, get_config

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a CLI command needs, built once per process."""

    config: Config
    store: RegistryStore
    marketplace: MarketplaceClient
    manager: ExtensionManager
    events: EventDispatcher


def log_event(event: LifecycleEvent) -> None:
    version = event.record.version if event.record else "-"
    logger.debug("Event %s: %s (%s)", event.name, event.slug, version)


def build_context(
    config: Config, transport: httpx.BaseTransport | None = None
) -> AppContext:
    """Build the manager and collaborators described by ``config``.

    Args:
        config: Loaded configuration.
        transport: Optional httpx transport shared by the marketplace client
            and the package fetcher.

    Returns:
        Wired application context.
    """
    store = JsonRegistryStore(Path(config.storage.registry_path).expanduser())

    marketplace = MarketplaceClient(
        base_url=config.marketplace.url,
        api_key=config.marketplace.api_key or None,
        timeout=config.marketplace.timeout,
        cache_ttl=config.marketplace.cache_ttl,
        transport=transport,
    )
    fetcher = PackageFetcher(
        extensions_dir=Path(config.storage.extensions_dir).expanduser(),
        timeout=config.marketplace.download_timeout,
        transport=transport,
        headers={k: v for k, v in marketplace.headers.items() if k == "Authorization"},
    )
    host = HostEnvironment(
        runtime_version=config.host.runtime_version,
        platform_version=config.host.platform_version,
        app_version=config.host.app_version,
    )

    events = EventDispatcher()
    events.subscribe(ALL_EVENTS, log_event)

    manager = ExtensionManager(
        store=store,
        marketplace=marketplace,
        licenses=LicenseValidator(marketplace, site_url=config.host.site_url),
        fetcher=fetcher,
        requirements=RequirementChecker(host),
        loader=ExtensionLoader(),
        events=events,
    )
    return AppContext(
        config=config,
        store=store,
        marketplace=marketplace,
        manager=manager,
        events=events,
    )


_context: AppContext | None = None


def get_context() -> AppContext:
    """Get the process-wide context, built from ``get_config()`` on first use."""
    global _context
    if _context is None:
        _context = build_context(get_config())
    return _context


def reset_context() -> None:
    global _context
    _context = None
