"""Object storage backends for stamped drawing images.

Objects are addressed by ``(bucket, path)``. Uploads never overwrite an
existing object unless explicitly asked to. Every backend can turn an
address into a public URL that clients use to fetch the image.

Two backends are provided:

- ``InMemoryObjectStorage`` for tests and local development.
- ``LocalObjectStorage`` which writes files under ``settings.storage_dir``;
  ``globestamp.main`` serves that directory at ``/storage``.

Example:
    >>> storage = InMemoryObjectStorage("http://localhost:8000/storage")
    >>> storage.upload("drawings", "user-1/a.png", b"...", "image/png")
    'user-1/a.png'
    >>> storage.get_public_url("drawings", "user-1/a.png")
    'http://localhost:8000/storage/drawings/user-1/a.png'
"""

from __future__ import annotations

import dataclasses
import pathlib
import urllib.parse
from typing import Protocol

from globestamp.core import config, errors


class ObjectStorageProtocol(Protocol):
    """Protocol interface for storing binary objects."""

    def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        overwrite: bool = False,
    ) -> str: ...

    def get_public_url(self, bucket: str, path: str) -> str: ...


def _public_url(base_url: str, bucket: str, path: str) -> str:
    quoted = urllib.parse.quote(f"{bucket}/{path}")
    return f"{base_url.rstrip('/')}/{quoted}"


@dataclasses.dataclass(frozen=True)
class StoredObject:
    data: bytes
    content_type: str


class InMemoryObjectStorage(ObjectStorageProtocol):
    """Dictionary-backed storage. Data is lost when the process exits."""

    def __init__(self, base_url: str = "http://localhost:8000/storage") -> None:
        self.base_url = base_url
        self.objects: dict[tuple[str, str], StoredObject] = {}

    def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        overwrite: bool = False,
    ) -> str:
        key = (bucket, path)
        if key in self.objects and not overwrite:
            raise errors.StorageError(f"Object already exists: {bucket}/{path}")
        self.objects[key] = StoredObject(data=data, content_type=content_type)
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return _public_url(self.base_url, bucket, path)


class LocalObjectStorage(ObjectStorageProtocol):
    """Filesystem-backed storage rooted at a directory.

    Each bucket is a subdirectory of the root. Paths that would resolve
    outside their bucket are rejected.
    """

    def __init__(self, root: pathlib.Path, base_url: str) -> None:
        """Initialize storage.

        Args:
            root: Directory holding one subdirectory per bucket.
            base_url: Public URL under which ``root`` is served.
        """
        self.root = root
        self.base_url = base_url

    def _resolve(self, bucket: str, path: str) -> pathlib.Path:
        bucket_dir = (self.root / bucket).resolve()
        target = (bucket_dir / path).resolve()
        if bucket_dir == target or bucket_dir not in target.parents:
            raise errors.StorageError(f"Invalid object path: {bucket}/{path}")
        return target

    def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        overwrite: bool = False,
    ) -> str:
        """Write ``data`` to ``root/bucket/path``.

        The content type is implied by the file extension when the file
        is served back, so it is not persisted separately.

        Raises:
            StorageError: If the path escapes the bucket, the object exists
                and ``overwrite`` is False, or the write fails.
        """
        target = self._resolve(bucket, path)
        mode = "wb" if overwrite else "xb"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open(mode) as fh:
                fh.write(data)
        except FileExistsError as exc:
            raise errors.StorageError(
                f"Object already exists: {bucket}/{path}"
            ) from exc
        except OSError as exc:
            raise errors.StorageError(f"Upload failed: {exc}") from exc
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return _public_url(self.base_url, bucket, path)


def get_object_storage(settings: config.Settings) -> ObjectStorageProtocol:
    """Factory function to create the configured object storage.

    Args:
        settings: Application settings with storage_dir and
            public_storage_url.

    Returns:
        LocalObjectStorage rooted at ``settings.storage_dir``.
    """
    return LocalObjectStorage(settings.storage_dir, settings.public_storage_url)
