"""Error taxonomy and typed operation results for the extension lifecycle.

Components raise ``LifecycleError`` subclasses for expected conditions. The
lifecycle manager catches them at its public boundary and hands callers an
``OperationResult`` carrying the error kind and a readable message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from schemas.extension import InstalledExtensionRecord


class ErrorKind(str, Enum):
    """Kinds of expected lifecycle failures."""

    NOT_FOUND = "not_found"
    ALREADY_INSTALLED = "already_installed"
    REQUIREMENT_NOT_MET = "requirement_not_met"
    LICENSE_REQUIRED = "license_required"
    LICENSE_INVALID = "license_invalid"
    DOWNLOAD_FAILED = "download_failed"
    EXTRACTION_FAILED = "extraction_failed"
    ACTIVATION_FAILED = "activation_failed"
    HOOK_FAILED = "hook_failed"
    UNAVAILABLE = "unavailable"
    BUSY = "busy"


class LifecycleError(Exception):
    """Base class for expected lifecycle failures."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LifecycleError):
    """Slug unknown to the registry or the remote catalog."""

    kind = ErrorKind.NOT_FOUND


class AlreadyInstalledError(LifecycleError):
    """Slug already has an installed record."""

    kind = ErrorKind.ALREADY_INSTALLED


class RequirementNotMetError(LifecycleError):
    """Host version is below an extension's declared minimum."""

    kind = ErrorKind.REQUIREMENT_NOT_MET

    def __init__(self, which: str, required: str, actual: str):
        super().__init__(f"This extension requires {which} {required} or higher (found {actual})")
        self.which = which
        self.required = required
        self.actual = actual


class LicenseRequiredError(LifecycleError):
    """A premium extension was requested without a license key."""

    kind = ErrorKind.LICENSE_REQUIRED


class LicenseInvalidError(LifecycleError):
    """License rejected by the remote registry, expired or absent."""

    kind = ErrorKind.LICENSE_INVALID


class DownloadFailedError(LifecycleError):
    """Package archive could not be downloaded."""

    kind = ErrorKind.DOWNLOAD_FAILED


class ExtractionFailedError(LifecycleError):
    """Package archive could not be extracted."""

    kind = ErrorKind.EXTRACTION_FAILED


class ActivationFailedError(LifecycleError):
    """Activation hook or entry point raised."""

    kind = ErrorKind.ACTIVATION_FAILED


class HookFailedError(LifecycleError):
    """A lifecycle hook file raised while running."""

    kind = ErrorKind.HOOK_FAILED


class UnavailableError(LifecycleError):
    """Remote catalog unreachable, timed out or returned garbage."""

    kind = ErrorKind.UNAVAILABLE


class OperationInProgressError(LifecycleError):
    """Another lifecycle operation holds the slug."""

    kind = ErrorKind.BUSY

    def __init__(self, slug: str):
        super().__init__(f"Another operation is already running for '{slug}'")
        self.slug = slug


@dataclass
class OperationResult:
    """Outcome of a public lifecycle operation."""

    success: bool
    message: str
    error: ErrorKind | None = None
    record: InstalledExtensionRecord | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        message: str,
        record: InstalledExtensionRecord | None = None,
        **details: Any,
    ) -> OperationResult:
        return cls(success=True, message=message, record=record, details=details)

    @classmethod
    def fail(cls, error: LifecycleError, **details: Any) -> OperationResult:
        return cls(success=False, message=error.message, error=error.kind, details=details)

    def __bool__(self) -> bool:
        return self.success
