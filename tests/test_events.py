"""Tests for lifecycle event dispatch."""

import logging

from extensions.events import (
    ALL_EVENTS,
    EXTENSION_ACTIVATED,
    EXTENSION_INSTALLED,
    EventDispatcher,
)
from schemas.extension import InstalledExtensionRecord


def test_handlers_run_in_subscription_order():
    events = EventDispatcher()
    calls = []
    events.subscribe(EXTENSION_INSTALLED, lambda e: calls.append("first"))
    events.subscribe(ALL_EVENTS, lambda e: calls.append("catch-all"))
    events.subscribe(EXTENSION_INSTALLED, lambda e: calls.append("second"))

    events.notify(EXTENSION_INSTALLED, "seo-kit")

    assert calls == ["first", "second", "catch-all"]


def test_only_matching_handlers_run():
    events = EventDispatcher()
    calls = []
    events.subscribe(EXTENSION_ACTIVATED, calls.append)

    events.notify(EXTENSION_INSTALLED, "seo-kit")

    assert calls == []


def test_event_payload_is_a_snapshot():
    events = EventDispatcher()
    received = []
    events.subscribe(EXTENSION_INSTALLED, received.append)
    record = InstalledExtensionRecord(slug="seo-kit", version="1.0.0")

    events.notify(EXTENSION_INSTALLED, "seo-kit", record)
    record.version = "2.0.0"

    event = received[0]
    assert event.name == EXTENSION_INSTALLED
    assert event.slug == "seo-kit"
    assert event.record.version == "1.0.0"


def test_failing_handler_is_logged_and_skipped(caplog):
    events = EventDispatcher()
    calls = []

    def broken(event):
        raise RuntimeError("handler bug")

    events.subscribe(EXTENSION_INSTALLED, broken)
    events.subscribe(EXTENSION_INSTALLED, calls.append)

    with caplog.at_level(logging.ERROR, logger="extensions.events"):
        events.notify(EXTENSION_INSTALLED, "seo-kit")

    assert len(calls) == 1
    assert "handler bug" in caplog.text


def test_unsubscribe():
    events = EventDispatcher()
    calls = []
    events.subscribe(EXTENSION_INSTALLED, calls.append)

    assert events.unsubscribe(EXTENSION_INSTALLED, calls.append)
    assert not events.unsubscribe(EXTENSION_INSTALLED, calls.append)

    events.notify(EXTENSION_INSTALLED, "seo-kit")
    assert calls == []
