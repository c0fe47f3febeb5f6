"""Extension lifecycle management.

Installs extensions from a remote marketplace, activates and deactivates them
inside the host process, updates them with rollback, and removes them.

Installed packages live under ~/.extman/extensions/ by default; the registry
of installed extensions is a JSON file beside it.
"""

from extensions.errors import ErrorKind, LifecycleError, OperationResult
from extensions.events import EventDispatcher, LifecycleEvent
from extensions.fetcher import PackageFetcher
from extensions.license import LicenseValidationResult, LicenseValidator
from extensions.loader import ExtensionLoader, Hook
from extensions.manager import ExtensionManager
from extensions.manifest import PackageManifest
from extensions.marketplace import MarketplaceClient
from extensions.requirements import HostEnvironment, RequirementChecker, compare_versions
from extensions.store import InMemoryRegistryStore, JsonRegistryStore, RegistryStore

__all__ = [
    "ErrorKind",
    "EventDispatcher",
    "ExtensionLoader",
    "ExtensionManager",
    "Hook",
    "HostEnvironment",
    "InMemoryRegistryStore",
    "JsonRegistryStore",
    "LicenseValidationResult",
    "LicenseValidator",
    "LifecycleError",
    "LifecycleEvent",
    "MarketplaceClient",
    "OperationResult",
    "PackageFetcher",
    "PackageManifest",
    "RegistryStore",
    "RequirementChecker",
    "compare_versions",
]
