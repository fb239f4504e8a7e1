"""
Shared cache of versioned runner packages.

Every target installs from the same package, so each version is downloaded
at most once into ``<base_dir>/_cache/<version>/`` and reused afterwards.
"""

import fcntl
import hashlib
import logging
import os
import platform as platform_module
import tarfile
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from ..error_handling import DownloadError, is_retryable_http_error, map_http_error

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

_OS_MAP = {
    "linux": "linux",
    "darwin": "osx",
}
_ARCH_MAP = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def detect_platform() -> str:
    """Detect the runner platform string for this host.

    Returns:
        Platform string such as 'linux-x64' or 'osx-arm64'
    """
    system = platform_module.system().lower()
    machine = platform_module.machine().lower()
    return f"{_OS_MAP.get(system, system)}-{_ARCH_MAP.get(machine, 'x64')}"


@dataclass(frozen=True)
class CachedArtifact:
    """A runner package present in the cache.

    Attributes:
        version: Runner version
        path: Path of the package file
    """
    version: str
    path: Path


class ArtifactCache:
    """Write-once-per-version cache of runner packages.

    Downloads are streamed to a temporary file in the version directory and
    moved into place with an atomic rename while an exclusive lock on the
    version directory is held.
    """

    def __init__(
        self,
        cache_dir: Path,
        url_template: str,
        platform: Optional[str] = None,
        sha256: Optional[str] = None,
        timeout: float = 300.0,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the cache.

        Args:
            cache_dir: Root cache directory (``<base_dir>/_cache``)
            url_template: Download URL containing ``{version}`` and ``{platform}``
            platform: Runner platform string (auto-detected if None)
            sha256: Expected package checksum, verified after download
            timeout: Download timeout in seconds
            http_client: Client to use instead of creating one per download
        """
        self.cache_dir = Path(cache_dir)
        self.url_template = url_template
        self.platform = platform or detect_platform()
        self.sha256 = sha256.lower() if sha256 else None
        self.timeout = timeout
        self._http_client = http_client

    def archive_name(self, version: str) -> str:
        """File name of the package for a version."""
        return f"actions-runner-{self.platform}-{version}.tar.gz"

    def download_url(self, version: str) -> str:
        return self.url_template.format(version=version, platform=self.platform)

    def artifact_path(self, version: str) -> Path:
        return self.cache_dir / version / self.archive_name(version)

    def get(self, version: str) -> Optional[CachedArtifact]:
        """Return the cached artifact for a version, or None if absent."""
        path = self.artifact_path(version)
        if path.is_file():
            return CachedArtifact(version=version, path=path)
        return None

    def ensure_artifact(self, version: str) -> CachedArtifact:
        """Ensure the package for a version is cached, downloading if needed.

        Args:
            version: Runner version

        Returns:
            The cached artifact

        Raises:
            DownloadError: If the package cannot be downloaded or verified
        """
        cached = self.get(version)
        if cached:
            logger.debug(f"Runner {version} already cached at {cached.path}")
            return cached

        version_dir = self.cache_dir / version
        version_dir.mkdir(parents=True, exist_ok=True)

        with self._locked(version_dir):
            # Another process may have finished the download while we waited
            cached = self.get(version)
            if cached:
                return cached

            url = self.download_url(version)
            logger.info(f"Downloading runner {version} from {url}")
            self._download_atomic(url, self.artifact_path(version))

        logger.info(f"Cached runner {version} at {self.artifact_path(version)}")
        return CachedArtifact(version=version, path=self.artifact_path(version))

    @contextmanager
    def _locked(self, version_dir: Path) -> Iterator[None]:
        """Hold an exclusive lock scoped to one cache version."""
        with open(version_dir / ".lock", "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def _download_atomic(self, url: str, destination: Path) -> None:
        fd, temp_name = tempfile.mkstemp(
            dir=destination.parent, prefix=".download-", suffix=".part"
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                digest = self._fetch(url, f)
                f.flush()
                os.fsync(f.fileno())

            if self.sha256 and digest != self.sha256:
                raise DownloadError(
                    f"Checksum mismatch for {url}: expected {self.sha256}, got {digest}"
                )

            os.replace(temp_path, destination)
        except httpx.HTTPError as e:
            raise DownloadError(map_http_error(e, "runner download")["error"]) from e
        except OSError as e:
            raise DownloadError(f"Failed to write runner package: {e}") from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

    @retry(
        retry=retry_if_exception(is_retryable_http_error),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _fetch(self, url: str, f) -> str:
        """Stream a URL into an open file and return its SHA-256."""
        f.seek(0)
        f.truncate()
        digest = hashlib.sha256()

        client = self._http_client or httpx.Client(follow_redirects=True, timeout=self.timeout)
        try:
            with client.stream("GET", url) as response:
                if response.is_error:
                    # Error bodies feed the failure message
                    response.read()
                response.raise_for_status()
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    f.write(chunk)
                    digest.update(chunk)
        finally:
            if client is not self._http_client:
                client.close()

        return digest.hexdigest()


def extract_artifact(artifact: CachedArtifact, directory: Path) -> None:
    """Extract a runner package into a target directory.

    Args:
        artifact: The cached package
        directory: Target directory (created if missing)

    Raises:
        tarfile.TarError: If the archive is corrupt
        ValueError: If a member would be written outside the directory
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    root = directory.resolve()

    with tarfile.open(artifact.path, "r:gz") as tar:
        for member in tar.getmembers():
            member_path = (root / member.name).resolve()
            if member_path != root and root not in member_path.parents:
                raise ValueError(f"Refusing to extract '{member.name}' outside {directory}")
        if hasattr(tarfile, "data_filter"):
            tar.extractall(root, filter="data")
        else:
            tar.extractall(root)

    logger.debug(f"Extracted runner {artifact.version} into {directory}")
