"""Fetch transient preview assets from the remote host's CDN."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..exceptions import ExpiredLinkError, TransientError, UploadError

logger = logging.getLogger(__name__)

EXPIRED_STATUSES = frozenset({403, 404, 410})


@dataclass(frozen=True, slots=True)
class DownloadedMedia:
    data: bytes
    content_type: str | None
    url: str


class Downloader(Protocol):
    async def fetch(self, url: str) -> DownloadedMedia: ...


class MediaDownloader:
    """Download preview bytes with a shared ``httpx.AsyncClient``.

    A single attempt is made per call; retries belong to the mirror queue.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds))
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> DownloadedMedia:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout, follow_redirects=True, transport=self._transport
            )
        try:
            response = await self._client.get(url)
        except httpx.RequestError as exc:
            raise TransientError(f"Download of preview failed: {exc}") from exc
        except (httpx.InvalidURL, ValueError) as exc:
            raise ExpiredLinkError(f"Preview link is malformed: {exc}") from exc

        status = response.status_code
        if status in EXPIRED_STATUSES:
            raise ExpiredLinkError(f"Preview link rejected with status {status}", status_code=status)
        if status >= 400:
            raise TransientError(f"Preview download failed with status {status}", status_code=status)
        if not response.content:
            raise UploadError("Preview download returned an empty body")

        logger.debug("mirror.download.ok", extra={"bytes": len(response.content)})
        return DownloadedMedia(
            data=response.content,
            content_type=response.headers.get("content-type"),
            url=url,
        )


__all__ = ["DownloadedMedia", "Downloader", "EXPIRED_STATUSES", "MediaDownloader"]
