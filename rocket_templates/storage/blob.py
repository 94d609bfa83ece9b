"""
Blob storage for persisted templates.

Provides:
- BlobStorage: upload(data, key, content_type) -> URL
- FilesystemBlobStorage: files under a root directory, file:// URLs
- HttpBlobStorage: HTTP PUT to an object store endpoint (requests)
- create_blob_storage: build the backend selected by configuration

Every upload failure is raised as StorageFailure; callers decide whether
that is fatal. No backend retries.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional, Union

import requests

from rocket_templates.errors import StorageFailure
from rocket_templates.project_config import BlobStorageConfig

logger = logging.getLogger(__name__)


def _check_key(key: str) -> str:
    parts = PurePosixPath(key).parts
    if not key or key.startswith("/") or ".." in parts:
        raise StorageFailure(f"Invalid blob key {key!r}")
    return key


class BlobStorage(ABC):
    """Write-only object store for template files."""

    @abstractmethod
    def upload(self, data: bytes, key: str, content_type: str) -> str:
        """Store bytes under a key and return their URL.

        Raises:
            StorageFailure: If the object could not be stored
        """


class FilesystemBlobStorage(BlobStorage):
    """Stores blobs as files below a root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def upload(self, data: bytes, key: str, content_type: str) -> str:
        target = self.root / _check_key(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageFailure(f"Cannot write blob {key}: {e}") from e
        logger.debug("Stored blob %s (%d bytes, %s)", target, len(data), content_type)
        return target.resolve().as_uri()


class HttpBlobStorage(BlobStorage):
    """PUTs blobs to ``<base_url>/<key>`` and returns that URL."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        if not base_url:
            raise ValueError("HttpBlobStorage needs a base_url")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def upload(self, data: bytes, key: str, content_type: str) -> str:
        url = f"{self.base_url}/{_check_key(key)}"
        headers = {"Content-Type": content_type}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            r = self.session.put(url, data=data, headers=headers, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise StorageFailure(f"Upload to {url} failed: {e}") from e
        logger.debug("Uploaded blob %s (%d bytes)", url, len(data))
        return url


def create_blob_storage(config: BlobStorageConfig) -> Optional[BlobStorage]:
    """Build the configured backend; None when blob storage is disabled."""
    if config.backend in ("none", ""):
        return None
    if config.backend == "filesystem":
        return FilesystemBlobStorage(config.root_dir)
    if config.backend == "http":
        return HttpBlobStorage(config.base_url, config.token, config.timeout_s)
    raise ValueError(f"Unknown blob storage backend: {config.backend!r}")
