"""
Object storage service for docuvid.

Stores generated images and clips under a local directory and hands back an
addressable URL for each object. Objects are keyed by project:
- {base_dir}/objects/{project_id}/images/scene_NN.png
- {base_dir}/objects/{project_id}/video/scene_NN.mp4

Implements path traversal protection to prevent directory escape attacks.
"""
import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import unquote, urlparse

import httpx

from docuvid.config import settings
from docuvid.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        ...

    async def fetch(self, url: str) -> bytes:
        ...


def image_key(project_id: uuid.UUID, order_index: int) -> str:
    return f"{project_id}/images/scene_{order_index:02d}.png"


def video_key(project_id: uuid.UUID, order_index: int) -> str:
    return f"{project_id}/video/scene_{order_index:02d}.mp4"


class LocalObjectStore:
    """
    Filesystem-backed object store.

    When public_base_url is configured, objects are addressed as
    {public_base_url}/{key}; otherwise as file:// URIs.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        public_base_url: Optional[str] = None,
    ):
        """
        Args:
            base_dir: Root directory for stored objects.
                     If None, uses settings.storage.tmp_dir / "objects"
            public_base_url: URL prefix the objects are served under.
                     If None, uses settings.storage.public_base_url
        """
        if base_dir is None:
            base_dir = Path(settings.storage.tmp_dir) / "objects"
        if public_base_url is None:
            public_base_url = settings.storage.public_base_url

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _resolve_key(self, key: str) -> Path:
        target = (self.base_dir / key).resolve()

        # Path traversal protection
        if not target.is_relative_to(self.base_dir):
            raise StorageError(f"Invalid object key: {key}")
        return target

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return self._resolve_key(key).as_uri()

    def owns(self, url: str) -> bool:
        """True when url addresses an object stored under base_dir."""
        if self.public_base_url and url.startswith(self.public_base_url + "/"):
            key = url[len(self.public_base_url) + 1:]
            try:
                self._resolve_key(key)
            except StorageError:
                return False
            return True

        parsed = urlparse(url)
        if parsed.scheme != "file":
            return False
        return Path(unquote(parsed.path)).resolve().is_relative_to(self.base_dir)

    def _local_path_for(self, url: str) -> Optional[Path]:
        if self.public_base_url and url.startswith(self.public_base_url + "/"):
            return self._resolve_key(url[len(self.public_base_url) + 1:])
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        if parsed.scheme == "":
            return Path(url)
        return None

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store bytes under a key, overwriting any previous object.

        Returns:
            URL addressing the stored object

        Raises:
            StorageError: If the object cannot be written
        """
        target = self._resolve_key(path)
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as e:
            raise StorageError(f"Upload of {path} failed: {e}") from e

        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {path}")
        return self.url_for(path)

    async def fetch(self, url: str) -> bytes:
        """
        Read back the bytes behind a URL returned by upload().

        Remote http(s) URLs are fetched with httpx.

        Raises:
            StorageError: If the object cannot be read
        """
        local_path = self._local_path_for(url)
        if local_path is not None:
            try:
                return await asyncio.to_thread(local_path.read_bytes)
            except OSError as e:
                raise StorageError(f"Object not readable: {url}: {e}") from e

        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise StorageError(f"Object not reachable: {url}: {e}") from e
