"""Abstractions over permanent object storage backends."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..catalog.catalog_models import MediaKind
from ..exceptions import UploadError

logger = logging.getLogger(__name__)

LOCAL_REF_PREFIX = "media://"
S3_REF_PREFIX = "s3://"
CONTENT_HASH_LENGTH = 32

_DEFAULT_EXTENSIONS = {MediaKind.THUMBNAIL: ".jpg", MediaKind.VIDEO_PREVIEW: ".mp4"}
_EXTENSION_ALIASES = {".jpe": ".jpg", ".jpeg": ".jpg", ".m4v": ".mp4"}


class ObjectStorage(ABC):
    """Persist bytes under a key and return a non-expiring reference."""

    @abstractmethod
    async def upload(self, data: bytes, key: str, *, content_type: str | None = None) -> str:
        """Store ``data`` at ``key`` and return the permanent reference."""


def _safe_key(key: str) -> PurePosixPath:
    path = PurePosixPath(key)
    if path.is_absolute() or ".." in path.parts or not path.parts:
        raise UploadError(f"Refusing to store object under unsafe key '{key}'")
    return path


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage rooted at ``media_root``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def path_for(self, key: str) -> Path:
        return self._root.joinpath(*_safe_key(key).parts)

    async def upload(self, data: bytes, key: str, *, content_type: str | None = None) -> str:
        target = self.path_for(key)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as exc:
            raise UploadError(f"Failed to write '{key}': {exc}") from exc
        return f"{LOCAL_REF_PREFIX}{key}"

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(target.suffix + ".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(target)


class S3ObjectStorage(ObjectStorage):
    """S3-compatible storage driven through boto3 in a worker thread."""

    def __init__(
        self,
        *,
        bucket: str,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=BotoConfig(
                connect_timeout=10,
                read_timeout=60,
                retries={"max_attempts": 2, "mode": "standard"},
                s3={"addressing_style": "path"},
            ),
        )

    async def upload(self, data: bytes, key: str, *, content_type: str | None = None) -> str:
        _safe_key(key)
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        try:
            await asyncio.to_thread(self._client.put_object, **params)
        except (BotoCoreError, ClientError) as exc:
            raise UploadError(f"S3 upload of '{key}' failed: {exc}") from exc
        logger.debug("storage.s3.uploaded", extra={"bucket": self._bucket, "key": key})
        return f"{S3_REF_PREFIX}{self._bucket}/{key}"


def media_extension(kind: MediaKind, *, content_type: str | None, source_url: str | None) -> str:
    """Pick a file extension from the response type, then the URL, then the kind."""
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        guessed = mimetypes.guess_extension(mime) if mime else None
        if guessed:
            return _EXTENSION_ALIASES.get(guessed, guessed)
    if source_url:
        suffix = PurePosixPath(urlparse(source_url).path).suffix.lower()
        if 1 < len(suffix) <= 6 and suffix[1:].isalnum():
            return _EXTENSION_ALIASES.get(suffix, suffix)
    return _DEFAULT_EXTENSIONS[kind]


def build_media_key(
    kind: MediaKind,
    data: bytes,
    *,
    when: datetime,
    content_type: str | None = None,
    source_url: str | None = None,
) -> str:
    """Return ``<prefix>/YYYY/MM/DD/<content hash><ext>`` for a mirrored asset."""
    digest = hashlib.sha256(data).hexdigest()[:CONTENT_HASH_LENGTH]
    extension = media_extension(kind, content_type=content_type, source_url=source_url)
    return f"{kind.storage_prefix}/{when:%Y/%m/%d}/{digest}{extension}"


def build_storage(settings: Any) -> ObjectStorage:
    """Create the backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == "s3":
        return S3ObjectStorage(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
        )
    return LocalObjectStorage(settings.media_root)


__all__ = [
    "LOCAL_REF_PREFIX",
    "LocalObjectStorage",
    "ObjectStorage",
    "S3ObjectStorage",
    "S3_REF_PREFIX",
    "build_media_key",
    "build_storage",
    "media_extension",
]
