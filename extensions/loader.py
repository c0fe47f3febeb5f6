"""Extension loader.

Imports an installed extension's entry point into the host process and runs
the lifecycle hook files a package may ship:

    <install_path>/
    ├── manifest.json
    ├── <main_file>              # entry point, default "<slug>.py"
    ├── uninstall.py             # uninstall hook
    └── includes/
        ├── activation.py        # activation hook
        ├── deactivation.py      # deactivation hook
        └── update.py            # update hook

Hook files run as plain modules: their top-level code is the hook.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from enum import Enum
from pathlib import Path
from types import ModuleType

from schemas.extension import InstalledExtensionRecord

logger = logging.getLogger(__name__)


class ExtensionLoadError(Exception):
    """Raised when an entry point fails to import."""

    pass


class HookError(Exception):
    """Raised when a lifecycle hook file fails."""

    def __init__(self, hook: Hook, slug: str, cause: BaseException):
        super().__init__(f"{hook.value} hook for '{slug}' failed: {cause}")
        self.hook = hook
        self.slug = slug
        self.cause = cause


class Hook(str, Enum):
    """Lifecycle hooks a package may implement."""

    ACTIVATION = "activation"
    DEACTIVATION = "deactivation"
    UPDATE = "update"
    UNINSTALL = "uninstall"


HOOK_FILES: dict[Hook, str] = {
    Hook.ACTIVATION: "includes/activation.py",
    Hook.DEACTIVATION: "includes/deactivation.py",
    Hook.UPDATE: "includes/update.py",
    Hook.UNINSTALL: "uninstall.py",
}


def module_name_for(slug: str, suffix: str = "") -> str:
    name = f"ext_{slug.replace('-', '_').replace('.', '_')}"
    return f"{name}_{suffix}" if suffix else name


class ExtensionLoader:
    """Load entry points and run hooks for installed extensions.

    Example:
        >>> loader = ExtensionLoader()
        >>> loader.run_hook(record, Hook.ACTIVATION)
        True
        >>> loader.load(record).__name__
        'ext_seo_kit'
    """

    def __init__(self) -> None:
        self._loaded: dict[str, ModuleType] = {}

    def entry_point(self, record: InstalledExtensionRecord) -> Path:
        main_file = record.main_file or f"{record.slug}.py"
        return Path(record.install_path) / main_file

    def load(self, record: InstalledExtensionRecord) -> ModuleType | None:
        """Import an extension's entry point.

        A package without an entry point file is left unloaded.

        Returns:
            The loaded module, or None when there is no entry point file.

        Raises:
            ExtensionLoadError: If importing the entry point raises.
        """
        if record.slug in self._loaded:
            return self._loaded[record.slug]

        entry = self.entry_point(record)
        if not entry.is_file():
            logger.warning("Entry point %s for %s not found; nothing loaded", entry, record.slug)
            return None

        name = module_name_for(record.slug)
        try:
            module = self._exec_module(name, entry)
        except Exception as e:
            raise ExtensionLoadError(f"Failed to load extension '{record.slug}': {e}") from e

        self._loaded[record.slug] = module
        logger.info("Loaded extension %s from %s", record.slug, entry)
        return module

    def unload(self, slug: str) -> bool:
        """Forget a loaded extension. Returns False if it was not loaded."""
        module = self._loaded.pop(slug, None)
        if module is None:
            return False
        sys.modules.pop(module.__name__, None)
        return True

    def is_loaded(self, slug: str) -> bool:
        return slug in self._loaded

    def loaded_slugs(self) -> list[str]:
        return list(self._loaded)

    def has_hook(self, record: InstalledExtensionRecord, hook: Hook) -> bool:
        return (Path(record.install_path) / HOOK_FILES[hook]).is_file()

    def run_hook(self, record: InstalledExtensionRecord, hook: Hook) -> bool:
        """Run a lifecycle hook file if the package ships one.

        Returns:
            True if the hook ran, False if the package has no such hook.

        Raises:
            HookError: If the hook raises.
        """
        hook_file = Path(record.install_path) / HOOK_FILES[hook]
        if not hook_file.is_file():
            return False

        name = module_name_for(record.slug, f"{hook.value}_hook")
        try:
            self._exec_module(name, hook_file)
        except Exception as e:
            raise HookError(hook, record.slug, e) from e
        finally:
            sys.modules.pop(name, None)

        logger.debug("Ran %s hook for %s", hook.value, record.slug)
        return True

    def _exec_module(self, module_name: str, file_path: Path) -> ModuleType:
        """Dynamically load a Python module from file."""
        spec = importlib.util.spec_from_file_location(module_name, file_path)
        if spec is None or spec.loader is None:
            raise ExtensionLoadError(f"Could not load module spec from {file_path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module
