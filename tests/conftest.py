"""Shared fixtures: an in-process marketplace and a fully wired manager."""

import io
import json
import zipfile
from typing import Any, Optional

import httpx
import pytest

from extensions.events import ALL_EVENTS, EventDispatcher
from extensions.fetcher import PackageFetcher
from extensions.license import LicenseValidator
from extensions.loader import ExtensionLoader
from extensions.manager import ExtensionManager
from extensions.marketplace import MarketplaceClient
from extensions.requirements import HostEnvironment, RequirementChecker
from extensions.store import JsonRegistryStore

BASE_URL = "https://marketplace.test/api/v1"
SITE_URL = "https://site.example.com"
FUTURE = "2099-01-01T00:00:00Z"
PAST = "2020-01-01T00:00:00Z"


def build_package(
    slug: str,
    files: Optional[dict[str, str]] = None,
    manifest: Optional[dict[str, Any]] = None,
    root: Optional[str] = None,
) -> bytes:
    """Build a zip archive with a top-level ``<slug>/`` directory in memory."""
    root = slug if root is None else root
    files = {f"{slug}.py": "LOADED = True\n"} if files is None else files
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        if manifest is not None:
            zf.writestr(f"{root}/manifest.json", json.dumps(manifest))
        for name, content in files.items():
            zf.writestr(f"{root}/{name}", content)
    return buffer.getvalue()


def log_hook(log_path, label: str) -> str:
    """Source for a hook file that appends ``label`` to a log file."""
    return f"with open({str(log_path)!r}, 'a') as f:\n    f.write({label!r} + '\\n')\n"


class FakeMarketplace:
    """Marketplace API served through ``httpx.MockTransport``."""

    def __init__(self):
        self.catalog: dict[str, dict[str, Any]] = {}
        self.packages: dict[str, bytes] = {}
        self.latest: dict[str, str] = {}
        self.licenses: dict[str, dict[str, Any]] = {}
        self.featured: list[str] = []
        self.failing_downloads: set[str] = set()
        self.unavailable = False
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def add(
        self,
        slug: str,
        /,
        version: str = "1.0.0",
        files: Optional[dict[str, str]] = None,
        manifest: Optional[dict[str, Any]] = None,
        **info: Any,
    ) -> None:
        """Publish an extension and its package."""
        if manifest is None:
            manifest = {"name": slug.replace("-", " ").title(), "version": version}
        self.catalog[slug] = {
            "id": str(len(self.catalog) + 1),
            "slug": slug,
            "name": slug.replace("-", " ").title(),
            "version": version,
            "description": f"The {slug} extension",
            "author": "Acme",
            **info,
        }
        self.packages[slug] = build_package(slug, files, manifest)

    def release(
        self,
        slug: str,
        version: str,
        files: Optional[dict[str, str]] = None,
        manifest: Optional[dict[str, Any]] = None,
    ) -> None:
        """Publish a new version of an existing extension."""
        if manifest is None:
            manifest = {"name": self.catalog[slug]["name"], "version": version}
        self.catalog[slug]["version"] = version
        self.latest[slug] = version
        self.packages[slug] = build_package(slug, files, manifest)

    def add_license(self, key: str, valid: bool = True, expires: Optional[str] = FUTURE) -> None:
        self.licenses[key] = {
            "valid": valid,
            "message": "License valid" if valid else "License revoked",
            "expires": expires,
        }

    def paths(self, method: Optional[str] = None) -> list[str]:
        prefix = httpx.URL(BASE_URL).path
        return [
            r.url.path[len(prefix):]
            for r in self.requests
            if method is None or r.method == method
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unavailable:
            return httpx.Response(503, json={"error": "maintenance"})

        path = request.url.path[len(httpx.URL(BASE_URL).path):]
        parts = [p for p in path.split("/") if p]

        if request.method == "POST" and path == "/licenses/validate":
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json=self.licenses.get(
                    body["license_key"], {"valid": False, "message": "Invalid license key"}
                ),
            )

        if request.method == "POST" and path == "/extensions/check-updates":
            body = json.loads(request.content)
            slugs = [item["slug"] for item in body["extensions"]]
            return httpx.Response(200, json={s: self.latest[s] for s in slugs if s in self.latest})

        if parts == ["extensions", "featured"]:
            return httpx.Response(200, json=[self.catalog[s] for s in self.featured])

        if parts == ["extensions"]:
            term = request.url.params.get("query", "")
            category = request.url.params.get("category", "")
            matches = [
                info
                for slug, info in self.catalog.items()
                if term in slug and (not category or info.get("category") == category)
            ]
            return httpx.Response(200, json={"extensions": matches, "total": len(matches), "pages": 1})

        if len(parts) == 3 and parts[0] == "extensions" and parts[2] == "download":
            slug = parts[1]
            if slug in self.failing_downloads:
                return httpx.Response(500)
            if slug not in self.packages:
                return httpx.Response(404)
            if self.catalog[slug].get("is_premium"):
                key = request.url.params.get("license_key")
                if not self.licenses.get(key, {}).get("valid"):
                    return httpx.Response(403)
            return httpx.Response(200, content=self.packages[slug])

        if len(parts) == 2 and parts[0] == "extensions":
            info = self.catalog.get(parts[1])
            if info is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=info)

        return httpx.Response(404)


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]


@pytest.fixture
def marketplace():
    return FakeMarketplace()


@pytest.fixture
def client(marketplace):
    return MarketplaceClient(base_url=BASE_URL, api_key="test-key", transport=marketplace.transport)


@pytest.fixture
def host():
    return HostEnvironment(runtime_version="3.12.1", platform_version="6.4", app_version="2.0.0")


@pytest.fixture
def extensions_dir(tmp_path):
    return tmp_path / "extensions"


@pytest.fixture
def registry_path(tmp_path):
    return tmp_path / "registry.json"


@pytest.fixture
def store(registry_path):
    return JsonRegistryStore(registry_path)


@pytest.fixture
def fetcher(marketplace, extensions_dir):
    return PackageFetcher(extensions_dir, transport=marketplace.transport)


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def events(recorder):
    dispatcher = EventDispatcher()
    dispatcher.subscribe(ALL_EVENTS, recorder)
    return dispatcher


@pytest.fixture
def manager(store, client, fetcher, host, events):
    """A manager wired to the fake marketplace and a registry under tmp_path."""
    return ExtensionManager(
        store=store,
        marketplace=client,
        licenses=LicenseValidator(client, site_url=SITE_URL),
        fetcher=fetcher,
        requirements=RequirementChecker(host),
        loader=ExtensionLoader(),
        events=events,
    )


@pytest.fixture
def hook_log(tmp_path):
    return tmp_path / "hooks.log"


def read_log(path) -> list[str]:
    if not path.exists():
        return []
    return path.read_text().split()
