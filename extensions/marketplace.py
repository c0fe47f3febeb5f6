"""Marketplace client for the remote extension catalog.

Looks up, searches and resolves downloads for extensions over HTTP, and
validates license keys. Lookups of single extensions and the featured list
are cached for an hour; cached data only feeds display and never blocks an
install or update decision.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from extensions.errors import NotFoundError, UnavailableError
from schemas.extension import MarketplaceExtensionInfo, SearchResults

logger = logging.getLogger(__name__)

DEFAULT_MARKETPLACE_URL = "https://marketplace.extman.dev/api/v1"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CACHE_TTL = 3600.0

CATEGORIES: dict[str, str] = {
    "field-types": "Field Types",
    "integrations": "Integrations",
    "workflow-actions": "Workflow Actions",
    "notifications": "Notifications",
    "payments": "Payments",
    "analytics": "Analytics",
    "security": "Security",
    "templates": "Templates",
    "utilities": "Utilities",
}


class TTLCache:
    """Small time-bounded cache keyed by string."""

    def __init__(self, ttl: float = DEFAULT_CACHE_TTL, clock: Callable[[], float] | None = None):
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if self.ttl <= 0:
            return
        self._entries[key] = (self._clock() + self.ttl, value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp from the API; naive values are UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Ignoring unparseable timestamp from marketplace: %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MarketplaceClient:
    """Client for the remote extension catalog.

    Example:
        >>> client = MarketplaceClient("https://marketplace.example.com/api/v1")
        >>> client.fetch_info("seo-kit").version
        '2.1.0'
        >>> client.search("payments", per_page=5).total
        12
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """Initialize the marketplace client.

        Args:
            base_url: Base URL of the marketplace API.
            api_key: Bearer token sent with every request.
            timeout: Timeout in seconds for metadata requests.
            cache_ttl: Lifetime of cached lookups in seconds (0 disables).
            transport: Custom httpx transport (tests use httpx.MockTransport).
            clock: Monotonic clock for cache expiry.
        """
        self.base_url = (base_url or DEFAULT_MARKETPLACE_URL).rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self.cache = TTLCache(cache_ttl, clock=clock)

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url + "/",
            timeout=self.timeout,
            headers=self.headers,
            transport=self.transport,
            follow_redirects=True,
        )

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Make an API request and decode the JSON body.

        Raises:
            NotFoundError: On HTTP 404.
            UnavailableError: On transport errors, timeouts, other non-2xx
                responses or an undecodable body.
        """
        try:
            with self._client() as client:
                response = client.request(
                    method, endpoint.lstrip("/"), params=params, json=json_data
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise NotFoundError(f"Not found in marketplace: {endpoint}")
            raise UnavailableError(f"Marketplace error: HTTP {e.response.status_code}")
        except httpx.TimeoutException as e:
            raise UnavailableError(f"Marketplace timed out: {e}")
        except httpx.RequestError as e:
            raise UnavailableError(f"Connection error: {e}")
        except ValueError as e:
            raise UnavailableError(f"Invalid response from marketplace: {e}")

    def fetch_info(self, slug: str) -> MarketplaceExtensionInfo:
        """Get catalog details for one extension.

        Args:
            slug: Extension slug.

        Returns:
            Extension info (possibly from cache).

        Raises:
            NotFoundError: If the catalog does not know the slug.
            UnavailableError: If the catalog cannot be reached.
        """
        cache_key = f"ext:{slug}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached.model_copy(deep=True)

        try:
            data = self._request("GET", f"/extensions/{slug}")
        except NotFoundError:
            raise NotFoundError(f"Extension '{slug}' not found in marketplace")

        if not isinstance(data, dict):
            raise UnavailableError(f"Invalid response for extension '{slug}'")
        info = self._parse_info({"slug": slug, **data})

        self.cache.set(cache_key, info)
        return info.model_copy(deep=True)

    def search(
        self,
        query: str = "",
        category: str = "",
        page: int = 1,
        per_page: int = 20,
        sort: str = "popular",
    ) -> SearchResults:
        """Search the catalog.

        Args:
            query: Free-text query.
            category: Category slug filter.
            page: Page number (1-indexed).
            per_page: Results per page.
            sort: Sort order understood by the marketplace (popular, rating, ...).

        Returns:
            One page of results.
        """
        params: dict[str, Any] = {
            "query": query,
            "category": category,
            "page": page,
            "per_page": per_page,
            "sort": sort,
        }
        data = self._request("GET", "/extensions", params=params)
        if not isinstance(data, dict):
            raise UnavailableError("Invalid search response from marketplace")

        items = data.get("extensions") or []
        if not isinstance(items, list):
            raise UnavailableError("Invalid search response from marketplace")

        try:
            return SearchResults(
                extensions=[self._parse_info(item) for item in items],
                total=data.get("total"),
                pages=data.get("pages"),
            )
        except ValidationError as e:
            raise UnavailableError(f"Invalid search response from marketplace: {e}")

    def fetch_featured(self) -> list[MarketplaceExtensionInfo]:
        """Get the curated featured list (cached)."""
        cached = self.cache.get("featured")
        if cached is not None:
            return [info.model_copy(deep=True) for info in cached]

        data = self._request("GET", "/extensions/featured")
        if isinstance(data, dict):
            data = data.get("extensions", [])
        if not isinstance(data, list):
            raise UnavailableError("Invalid featured response from marketplace")

        featured = [self._parse_info(item) for item in data]
        self.cache.set("featured", featured)
        return [info.model_copy(deep=True) for info in featured]

    def check_updates(self, installed: list[tuple[str, str]]) -> dict[str, str]:
        """Ask the catalog for the latest versions of installed extensions.

        Args:
            installed: (slug, installed_version) pairs.

        Returns:
            Mapping of slug to latest version, for the slugs the catalog
            reported on.
        """
        body = {"extensions": [{"slug": slug, "version": version} for slug, version in installed]}
        data = self._request("POST", "/extensions/check-updates", json_data=body)
        if not isinstance(data, dict):
            raise UnavailableError("Invalid update-check response from marketplace")

        return {
            str(slug): str(version)
            for slug, version in data.items()
            if version is not None and not isinstance(version, (dict, list))
        }

    def validate_license(
        self, slug: str, license_key: str, site_url: str
    ) -> dict[str, Any]:
        """Validate a license key against the catalog.

        Returns:
            Raw ``{valid, message, expires}`` payload.

        Raises:
            UnavailableError: If the catalog cannot be reached.
        """
        body = {"extension": slug, "license_key": license_key, "site_url": site_url}
        try:
            data = self._request("POST", "/licenses/validate", json_data=body)
        except NotFoundError:
            raise UnavailableError("License endpoint not found")
        if not isinstance(data, dict):
            raise UnavailableError("Invalid license response from marketplace")
        return data

    def download_url(
        self,
        slug: str,
        license_key: str | None = None,
        site_url: str | None = None,
    ) -> str:
        """Build the download URL for a package.

        License key and site URL are appended as query parameters when a
        license key is given.
        """
        url = httpx.URL(f"{self.base_url}/extensions/{slug}/download")
        if license_key:
            url = url.copy_merge_params({"license_key": license_key, "site_url": site_url or ""})
        return str(url)

    def clear_cache(self) -> None:
        self.cache.clear()

    def _parse_info(self, data: Any) -> MarketplaceExtensionInfo:
        try:
            return MarketplaceExtensionInfo.model_validate(data)
        except ValidationError as e:
            raise UnavailableError(f"Invalid extension data from marketplace: {e}")
