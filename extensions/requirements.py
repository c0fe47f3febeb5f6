"""Host requirement checks for extensions."""

from __future__ import annotations

import platform
import re
from dataclasses import dataclass

from extensions.errors import RequirementNotMetError
from schemas.extension import MarketplaceExtensionInfo

_LEADING_DIGITS = re.compile(r"\d+")


def _segments(version: str) -> list[int]:
    parts: list[int] = []
    for segment in str(version).strip().split("."):
        match = _LEADING_DIGITS.match(segment)
        parts.append(int(match.group()) if match else 0)
    return parts


def compare_versions(v1: str, v2: str) -> int:
    """Compare two dotted version strings.

    Segments are compared numerically left to right; missing segments count
    as 0, so "1.2" == "1.2.0".

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2.
    """
    parts1 = _segments(v1)
    parts2 = _segments(v2)
    width = max(len(parts1), len(parts2))
    parts1 += [0] * (width - len(parts1))
    parts2 += [0] * (width - len(parts2))

    for p1, p2 in zip(parts1, parts2):
        if p1 < p2:
            return -1
        if p1 > p2:
            return 1
    return 0


@dataclass
class HostEnvironment:
    """Versions of the host an extension runs inside."""

    runtime_version: str = platform.python_version()
    platform_version: str = "0"
    app_version: str = "0"


class RequirementChecker:
    """Compare host versions against an extension's declared minimums."""

    def __init__(self, host: HostEnvironment | None = None):
        self.host = host or HostEnvironment()

    def check(
        self, info: MarketplaceExtensionInfo, host: HostEnvironment | None = None
    ) -> None:
        """Check runtime, platform and application versions, in that order.

        Raises:
            RequirementNotMetError: For the first requirement that fails.
        """
        host = host or self.host
        checks = [
            ("runtime", info.requires_runtime, host.runtime_version),
            ("platform", info.requires_platform, host.platform_version),
            ("host application", info.requires_app, host.app_version),
        ]
        for which, required, actual in checks:
            if compare_versions(actual, required) < 0:
                raise RequirementNotMetError(which, required, actual)
