"""Blob store for case photos.

Learn: The database only keeps URLs; the bytes live behind a BlobStore.
LocalBlobStore writes under a directory and serves URLs rooted at
blob_base_url. A hosted backend (S3, Cloudinary, ...) only needs the same
two methods. Disk I/O runs in a worker thread so the event loop never
blocks on a large upload.
"""

import asyncio
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol

import structlog

from rescuetrack.config import settings

logger = structlog.get_logger()

THUMBNAIL_SUFFIX = "?w=300&h=300&fit=cover"


@dataclass(frozen=True)
class StoredBlob:
    url: str
    thumbnail_url: Optional[str] = None


class BlobStore(Protocol):
    async def save(self, key: str, content: bytes, content_type: str) -> StoredBlob: ...

    async def delete(self, url: str) -> None: ...


class LocalBlobStore:
    """Filesystem-backed blob store (development and single-node deploys)."""

    def __init__(self, root: str, base_url: str):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def _path_for(self, key: str) -> str:
        path = os.path.normpath(os.path.join(self.root, key))
        if not path.startswith(os.path.normpath(self.root) + os.sep):
            raise ValueError(f"Blob key escapes storage root: {key}")
        return path

    async def save(self, key: str, content: bytes, content_type: str) -> StoredBlob:
        path = self._path_for(key)
        await asyncio.to_thread(_write_file, path, content)
        url = f"{self.base_url}/{key}"
        logger.debug("blob.saved", key=key, size=len(content), content_type=content_type)
        return StoredBlob(url=url, thumbnail_url=url + THUMBNAIL_SUFFIX)

    async def delete(self, url: str) -> None:
        prefix = self.base_url + "/"
        if not url.startswith(prefix):
            raise ValueError(f"Not a URL from this store: {url}")
        path = self._path_for(url[len(prefix):])
        await asyncio.to_thread(_remove_file, path)
        logger.debug("blob.deleted", url=url)


def _write_file(path: str, content: bytes) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)


def _remove_file(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


@lru_cache
def get_blob_store() -> BlobStore:
    """FastAPI dependency — the configured blob store."""
    return LocalBlobStore(settings.blob_storage_dir, settings.blob_base_url)
