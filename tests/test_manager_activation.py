"""Tests for activation, deactivation, licensing and boot-time loading."""

import sys
from datetime import datetime, timedelta, timezone

import pytest

from extensions.errors import ErrorKind
from extensions.events import EXTENSION_ACTIVATED, EXTENSION_DEACTIVATED, EXTENSION_LOADED
from schemas.extension import ExtensionStatus, InstalledExtensionRecord
from tests.conftest import PAST, log_hook, read_log


def assert_active_set_consistent(manager):
    """Stored status is active exactly for the members of the active-set."""
    active_set = set(manager.store.get_active_slugs())
    active_status = {r.slug for r in manager.list_installed() if r.status == ExtensionStatus.ACTIVE}
    assert active_set == active_status


@pytest.fixture
def installed(marketplace, manager, hook_log):
    """Install a free extension with logging hooks and entry point."""
    marketplace.add(
        "seo-kit",
        files={
            "seo-kit.py": log_hook(hook_log, "loaded"),
            "includes/activation.py": log_hook(hook_log, "activation"),
            "includes/deactivation.py": log_hook(hook_log, "deactivation"),
        },
    )
    assert manager.install("seo-kit").success
    yield "seo-kit"
    manager.loader.unload("seo-kit")


def install_premium(marketplace, manager, expires):
    marketplace.add("pro-forms", is_premium=True)
    marketplace.add_license("KEY-1", expires=expires)
    assert manager.install("pro-forms", license_key="KEY-1").success


def test_activate(manager, installed, hook_log, recorder):
    result = manager.activate(installed)

    assert result.success, result.message
    assert result.record.status == ExtensionStatus.ACTIVE
    assert manager.get_record(installed).status == ExtensionStatus.ACTIVE
    assert manager.is_active(installed)
    assert manager.loader.is_loaded(installed)
    assert read_log(hook_log) == ["activation", "loaded"]
    assert recorder.names[-2:] == [EXTENSION_LOADED, EXTENSION_ACTIVATED]
    assert_active_set_consistent(manager)


def test_activate_twice_is_a_noop(manager, installed, hook_log, recorder):
    manager.activate(installed)
    events_before = len(recorder.events)

    result = manager.activate(installed)

    assert result.success
    assert "already active" in result.message
    assert read_log(hook_log) == ["activation", "loaded"]
    assert len(recorder.events) == events_before
    assert manager.store.get_active_slugs() == [installed]


def test_activate_unknown(manager):
    result = manager.activate("ghost")

    assert result.error == ErrorKind.NOT_FOUND


def test_failing_activation_hook_keeps_extension_inactive(marketplace, manager):
    marketplace.add("seo-kit", files={"includes/activation.py": "raise RuntimeError('no db')\n"})
    manager.install("seo-kit")

    result = manager.activate("seo-kit")

    assert result.error == ErrorKind.ACTIVATION_FAILED
    assert "no db" in result.message
    assert manager.get_record("seo-kit").status == ExtensionStatus.INACTIVE
    assert not manager.is_active("seo-kit")
    assert_active_set_consistent(manager)


def test_failing_entry_point_keeps_extension_inactive(marketplace, manager):
    marketplace.add("seo-kit", files={"seo-kit.py": "import not_a_real_module_xyz\n"})
    manager.install("seo-kit")

    result = manager.activate("seo-kit")

    assert result.error == ErrorKind.ACTIVATION_FAILED
    assert not manager.loader.is_loaded("seo-kit")
    assert manager.get_record("seo-kit").status == ExtensionStatus.INACTIVE
    assert_active_set_consistent(manager)


def test_deactivate(manager, installed, hook_log, recorder):
    manager.activate(installed)

    result = manager.deactivate(installed)

    assert result.success
    assert manager.get_record(installed).status == ExtensionStatus.INACTIVE
    assert not manager.is_active(installed)
    assert not manager.loader.is_loaded(installed)
    assert "ext_seo_kit" not in sys.modules
    assert read_log(hook_log)[-1] == "deactivation"
    assert recorder.names[-1] == EXTENSION_DEACTIVATED
    assert_active_set_consistent(manager)


def test_failing_deactivation_hook_still_deactivates(marketplace, manager):
    marketplace.add("seo-kit", files={"includes/deactivation.py": "raise RuntimeError('oops')\n"})
    manager.install("seo-kit")
    manager.activate("seo-kit")

    result = manager.deactivate("seo-kit")

    assert result.success
    assert manager.get_record("seo-kit").status == ExtensionStatus.INACTIVE
    assert_active_set_consistent(manager)


def test_deactivate_unknown(manager):
    assert manager.deactivate("ghost").error == ErrorKind.NOT_FOUND


def test_activate_premium_with_valid_license(marketplace, manager):
    install_premium(marketplace, manager, expires="2099-01-01T00:00:00Z")

    assert manager.activate("pro-forms").success
    manager.loader.unload("pro-forms")


def test_activate_premium_with_expired_license(marketplace, manager):
    """An expired license blocks activation and leaves the record alone."""
    install_premium(marketplace, manager, expires=PAST)

    result = manager.activate("pro-forms")

    assert result.error == ErrorKind.LICENSE_INVALID
    assert manager.get_record("pro-forms").status == ExtensionStatus.INACTIVE
    assert not manager.is_active("pro-forms")


def test_license_expired_one_second_ago(manager, store, fetcher, extensions_dir):
    """Activation is refused the moment the license lapses."""
    now = datetime(2026, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    manager._clock = lambda: now
    install_path = extensions_dir / "pro-forms"
    install_path.mkdir(parents=True)
    store.put(InstalledExtensionRecord(
        slug="pro-forms",
        install_path=str(install_path),
        is_premium=True,
        license_key="KEY-1",
        license_expires_at=now - timedelta(seconds=1),
    ))

    result = manager.activate("pro-forms")

    assert result.error == ErrorKind.LICENSE_INVALID
    assert store.get("pro-forms").status == ExtensionStatus.INACTIVE
    assert store.get_active_slugs() == []


@pytest.mark.parametrize(
    "fields",
    [
        {},
        {"license_key": "KEY-1"},
        {"license_expires_at": datetime(2099, 1, 1, tzinfo=timezone.utc)},
    ],
)
def test_premium_without_complete_license_never_activates(manager, store, tmp_path, fields):
    store.put(InstalledExtensionRecord(
        slug="pro-forms", install_path=str(tmp_path), is_premium=True, **fields
    ))

    result = manager.activate("pro-forms")

    assert result.error == ErrorKind.LICENSE_INVALID
    assert store.get("pro-forms").status == ExtensionStatus.INACTIVE


def test_activate_license_then_activate(marketplace, manager):
    install_premium(marketplace, manager, expires=PAST)
    marketplace.add_license("KEY-2")

    result = manager.activate_license("pro-forms", "KEY-2")

    assert result.success
    record = manager.get_record("pro-forms")
    assert record.license_key == "KEY-2"
    assert record.license_expires_at.year == 2099
    assert manager.activate("pro-forms").success
    manager.loader.unload("pro-forms")


def test_activate_license_rejected(marketplace, manager):
    install_premium(marketplace, manager, expires="2099-01-01T00:00:00Z")

    result = manager.activate_license("pro-forms", "STOLEN")

    assert result.error == ErrorKind.LICENSE_INVALID
    assert manager.get_record("pro-forms").license_key == "KEY-1"


def test_activate_license_requires_key(manager):
    assert manager.activate_license("pro-forms", "").error == ErrorKind.LICENSE_REQUIRED


def test_load_active_extensions(marketplace, manager, installed, hook_log):
    manager.activate(installed)
    manager.loader.unload(installed)

    loaded = manager.load_active_extensions()

    assert loaded == [installed]
    assert manager.loader.is_loaded(installed)
    assert read_log(hook_log) == ["activation", "loaded", "loaded"]


def test_load_active_extensions_deactivates_broken(marketplace, manager):
    marketplace.add("seo-kit")
    manager.install("seo-kit")
    manager.activate("seo-kit")
    manager.loader.unload("seo-kit")
    record = manager.get_record("seo-kit")
    with open(f"{record.install_path}/seo-kit.py", "w") as f:
        f.write("raise RuntimeError('broken after upgrade')\n")

    loaded = manager.load_active_extensions()

    assert loaded == []
    assert manager.get_record("seo-kit").status == ExtensionStatus.INACTIVE
    assert_active_set_consistent(manager)


def test_load_active_extensions_skips_expired_license(manager, store, tmp_path):
    store.put(InstalledExtensionRecord(
        slug="pro-forms",
        install_path=str(tmp_path),
        status=ExtensionStatus.ACTIVE,
        is_premium=True,
        license_key="KEY-1",
        license_expires_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
    ))
    store.set_active_slugs(["pro-forms"])

    assert manager.load_active_extensions() == []
    assert not manager.loader.is_loaded("pro-forms")


def test_reconcile_active_set(manager, store, tmp_path):
    """Stored status wins over a stale active-set."""
    store.put(InstalledExtensionRecord(slug="a", install_path=str(tmp_path), status=ExtensionStatus.ACTIVE))
    store.put(InstalledExtensionRecord(slug="b", install_path=str(tmp_path)))
    store.set_active_slugs(["b", "ghost"])

    assert manager.reconcile_active_set() == ["a"]
    assert store.get_active_slugs() == ["a"]
    assert_active_set_consistent(manager)


def test_active_set_consistent_through_lifecycle(marketplace, manager):
    for slug in ("a", "b", "c"):
        marketplace.add(slug)
        manager.install(slug)
        assert_active_set_consistent(manager)

    for step in (
        lambda: manager.activate("a"),
        lambda: manager.activate("b"),
        lambda: manager.deactivate("a"),
        lambda: manager.activate("c"),
        lambda: manager.uninstall("b"),
        lambda: manager.activate("a"),
        lambda: manager.uninstall("a"),
    ):
        step()
        assert_active_set_consistent(manager)

    assert manager.store.get_active_slugs() == ["c"]
    manager.loader.unload("c")
