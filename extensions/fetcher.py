"""Package download and extraction.

Archives are streamed to a temp file, unpacked into a staging directory under
the managed extensions root, and the package's top-level ``<slug>/`` folder is
moved into place at ``<extensions_dir>/<slug>``.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path

import httpx

from extensions.errors import DownloadFailedError, ExtractionFailedError
from extensions.manifest import PackageManifest

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS_DIR = Path.home() / ".extman" / "extensions"
DEFAULT_DOWNLOAD_TIMEOUT = 120.0
STAGING_PREFIX = ".staging-"


class PackageFetcher:
    """Download and unpack extension packages.

    Example:
        >>> fetcher = PackageFetcher(Path("/srv/extensions"))
        >>> archive = fetcher.download("https://marketplace.example.com/api/v1/extensions/seo-kit/download")
        >>> fetcher.extract(archive, "seo-kit")
        PosixPath('/srv/extensions/seo-kit')
    """

    def __init__(
        self,
        extensions_dir: Path | None = None,
        timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the fetcher.

        Args:
            extensions_dir: Managed extensions root.
            timeout: Download timeout in seconds.
            transport: Custom httpx transport.
            headers: Extra request headers (e.g. Authorization).
        """
        self.extensions_dir = Path(extensions_dir or DEFAULT_EXTENSIONS_DIR)
        self.timeout = timeout
        self.transport = transport
        self.headers = headers or {}

    def ensure_extensions_dir(self) -> None:
        self.extensions_dir.mkdir(parents=True, exist_ok=True)

    def download(self, url: str) -> Path:
        """Stream an archive to a temporary file.

        Args:
            url: Absolute download URL.

        Returns:
            Path to the downloaded archive. The caller deletes it.

        Raises:
            DownloadFailedError: On non-2xx responses, timeouts or transport
                errors.
        """
        fd, tmp_name = tempfile.mkstemp(prefix="ext_", suffix=".pkg")
        archive_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "wb") as f:
                with httpx.Client(
                    timeout=self.timeout,
                    transport=self.transport,
                    headers=self.headers,
                    follow_redirects=True,
                ) as client:
                    with client.stream("GET", url) as response:
                        if not response.is_success:
                            raise DownloadFailedError(
                                f"Failed to download extension: HTTP {response.status_code}"
                            )
                        for chunk in response.iter_bytes():
                            f.write(chunk)
        except httpx.TimeoutException as e:
            archive_path.unlink(missing_ok=True)
            raise DownloadFailedError(f"Download timed out: {e}")
        except httpx.HTTPError as e:
            archive_path.unlink(missing_ok=True)
            raise DownloadFailedError(f"Download failed: {e}")
        except DownloadFailedError:
            archive_path.unlink(missing_ok=True)
            raise

        logger.debug("Downloaded %s to %s", url, archive_path)
        return archive_path

    def extract(
        self, archive_path: Path, slug: str, target_dir: Path | None = None
    ) -> Path:
        """Unpack an archive into ``<extensions_dir>/<slug>``.

        The archive must contain a top-level ``<slug>/`` directory. An
        existing directory at the target is replaced.

        Args:
            archive_path: Zip or tar archive.
            slug: Extension slug.
            target_dir: Install path to use instead of ``<extensions_dir>/<slug>``.

        Returns:
            The install path.

        Raises:
            ExtractionFailedError: If the archive is corrupt, of an unknown
                format, or has no ``<slug>/`` directory.
        """
        target_dir = Path(target_dir or self.extensions_dir / slug)
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f"{STAGING_PREFIX}{slug}-", dir=target_dir.parent))

        try:
            self._unpack(Path(archive_path), staging)

            package_root = staging / slug
            if not package_root.is_dir():
                raise ExtractionFailedError(
                    f"Extension extraction failed: archive has no '{slug}/' directory"
                )

            if target_dir.exists():
                logger.warning("Replacing existing directory %s", target_dir)
                self.remove_tree(target_dir)
            package_root.rename(target_dir)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        if not target_dir.is_dir():
            raise ExtractionFailedError(f"Extension extraction failed: {target_dir} missing")

        logger.debug("Extracted %s into %s", archive_path, target_dir)
        return target_dir

    def _unpack(self, archive_path: Path, destination: Path) -> None:
        try:
            if zipfile.is_zipfile(archive_path):
                with zipfile.ZipFile(archive_path) as zf:
                    zf.extractall(destination)
            elif tarfile.is_tarfile(archive_path):
                with tarfile.open(archive_path) as tar:
                    tar.extractall(destination, filter="data")
            else:
                raise ExtractionFailedError("Extension extraction failed: unknown archive format")
        except (zipfile.BadZipFile, tarfile.TarError, EOFError) as e:
            raise ExtractionFailedError(f"Extension extraction failed: {e}")
        except OSError as e:
            raise ExtractionFailedError(f"Extension extraction failed: {e}")

    def parse_manifest(self, install_path: Path) -> PackageManifest:
        """Read ``manifest.json`` from a package; empty when absent or invalid."""
        return PackageManifest.from_path(install_path)

    def remove_tree(self, path: Path) -> None:
        """Recursively delete a directory if it exists."""
        path = Path(path)
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
