"""Lifecycle event dispatch.

Collaborators (admin UI, caches, audit logging) subscribe at startup and are
notified synchronously after each lifecycle transition. Nothing a handler
does feeds back into the lifecycle manager.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from schemas.extension import InstalledExtensionRecord

logger = logging.getLogger(__name__)

EXTENSION_INSTALLED = "extension.installed"
EXTENSION_ACTIVATED = "extension.activated"
EXTENSION_DEACTIVATED = "extension.deactivated"
EXTENSION_UNINSTALLED = "extension.uninstalled"
EXTENSION_UPDATED = "extension.updated"
EXTENSION_LOADED = "extension.loaded"

ALL_EVENTS = "*"


@dataclass(frozen=True)
class LifecycleEvent:
    """Payload delivered to subscribers."""

    name: str
    slug: str
    record: InstalledExtensionRecord | None


EventHandler = Callable[[LifecycleEvent], None]


class EventDispatcher:
    """Synchronous, fire-and-forget event dispatcher.

    Example:
        >>> events = EventDispatcher()
        >>> events.subscribe(EXTENSION_ACTIVATED, lambda e: print(e.slug))
        >>> events.notify(EXTENSION_ACTIVATED, "seo-kit", record)
        seo-kit
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Register a handler for an event name, or ``"*"`` for all events."""
        self._handlers.setdefault(event_name, []).append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def notify(
        self,
        event_name: str,
        slug: str,
        record: InstalledExtensionRecord | None = None,
    ) -> None:
        """Deliver an event to its handlers, then to catch-all handlers.

        Handler errors are logged and swallowed.
        """
        event = LifecycleEvent(
            name=event_name,
            slug=slug,
            record=record.model_copy(deep=True) if record else None,
        )
        logger.debug("Dispatching %s for %s", event_name, slug)

        handlers = list(self._handlers.get(event_name, []))
        if event_name != ALL_EVENTS:
            handlers += self._handlers.get(ALL_EVENTS, [])

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler for %s failed (%s)", event_name, slug)
