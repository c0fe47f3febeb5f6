"""License validation for premium extensions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from extensions.errors import UnavailableError
from extensions.marketplace import MarketplaceClient, parse_timestamp
from schemas.extension import InstalledExtensionRecord

logger = logging.getLogger(__name__)


@dataclass
class LicenseValidationResult:
    """Outcome of a license check. Never persisted as-is."""

    valid: bool
    message: str
    expires_at: datetime | None = None


def is_license_valid(record: InstalledExtensionRecord, now: datetime | None = None) -> bool:
    """Check whether a record may be activated under its stored license.

    Free extensions are always valid. Premium extensions need a key and an
    expiry that lies in the future.
    """
    if not record.is_premium:
        return True
    if not record.license_key or record.license_expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return record.license_expires_at > now


class LicenseValidator:
    """Validate license keys against the marketplace.

    Transport failures never count as valid.
    """

    def __init__(self, client: MarketplaceClient, site_url: str = ""):
        """Initialize the validator.

        Args:
            client: Marketplace client used for the remote check.
            site_url: Identity of this host installation.
        """
        self.client = client
        self.site_url = site_url

    def validate(
        self,
        slug: str,
        license_key: str | None,
        premium: bool = True,
        site_url: str | None = None,
    ) -> LicenseValidationResult:
        """Validate a license key for an extension.

        Args:
            slug: Extension slug.
            license_key: Key supplied by the user.
            premium: Whether the extension needs a license at all.
            site_url: Override for the configured site identity.

        Returns:
            Validation result; ``valid`` is False on any transport failure.
        """
        if not premium:
            return LicenseValidationResult(valid=True, message="Free extension")

        if not license_key:
            return LicenseValidationResult(valid=False, message="License key required")

        try:
            data = self.client.validate_license(slug, license_key, site_url or self.site_url)
        except UnavailableError as e:
            logger.warning("License validation for %s failed: %s", slug, e.message)
            return LicenseValidationResult(valid=False, message=e.message)

        valid = data.get("valid") is True
        message = data.get("message") or ("License valid" if valid else "License validation failed")
        return LicenseValidationResult(
            valid=valid,
            message=str(message),
            expires_at=parse_timestamp(data.get("expires")),
        )
