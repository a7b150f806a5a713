"""Bounded-concurrency queue that copies transient previews into object storage."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..catalog.catalog_models import MediaKind, is_transient_ref
from ..exceptions import (
    ExpiredLinkError,
    LibrarySyncError,
    NotFoundError,
    TransientError,
    UploadError,
)
from ..media.media_downloader import Downloader
from ..media.object_storage import ObjectStorage, build_media_key
from ..remote.remote_models import RemoteFileInfo
from ..repositories.catalog_repository import CatalogRepository
from ..utils.async_utils import wrap_sleep

logger = logging.getLogger(__name__)

Refresher = Callable[[str], Awaitable[RemoteFileInfo]]


class MirrorJobState(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    RETRYING = "retrying"
    COMPLETED = "completed"
    PERMANENTLY_FAILED = "permanently_failed"


_TERMINAL_STATES = frozenset({MirrorJobState.COMPLETED, MirrorJobState.PERMANENTLY_FAILED})


@dataclass(slots=True)
class MirrorJob:
    """Pending preview copies for one catalog entry, keyed by ``slug``."""

    slug: str
    created_at: datetime
    thumbnail_url: str | None = None
    video_preview_url: str | None = None
    attempts: int = 0
    state: MirrorJobState = MirrorJobState.PENDING
    completed_kinds: set[MediaKind] = field(default_factory=set)
    last_error: str | None = None
    refreshed: bool = False

    def url_for(self, kind: MediaKind) -> str | None:
        if kind is MediaKind.THUMBNAIL:
            return self.thumbnail_url
        return self.video_preview_url

    def pending_kinds(self) -> list[tuple[MediaKind, str]]:
        pending = []
        for kind in MediaKind:
            url = self.url_for(kind)
            if url and kind not in self.completed_kinds:
                pending.append((kind, url))
        return pending

    def merge(self, *, thumbnail_url: str | None, video_preview_url: str | None) -> None:
        if thumbnail_url and not self.thumbnail_url:
            self.thumbnail_url = thumbnail_url
        if video_preview_url and not self.video_preview_url:
            self.video_preview_url = video_preview_url

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATES


@dataclass(slots=True)
class MirrorReport:
    completed: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class MirrorQueue:
    """Deduplicated by slug, drained with a caller supplied concurrency bound.

    Each job downloads its transient preview links, uploads the bytes under a
    content addressed key and patches the owning catalog entry with the
    permanent reference. Transient failures retry with exponential backoff
    until ``max_attempts`` is reached.
    """

    def __init__(
        self,
        *,
        storage: ObjectStorage,
        catalog: CatalogRepository,
        downloader: Downloader,
        refresher: Refresher | None = None,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._catalog = catalog
        self._downloader = downloader
        self._refresher = refresher
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = max(0.0, backoff_seconds)
        self._sleep = wrap_sleep(sleep)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._jobs: dict[str, MirrorJob] = {}
        self._catalog_lock = asyncio.Lock()

    def set_refresher(self, refresher: Refresher | None) -> None:
        self._refresher = refresher

    def enqueue(
        self,
        slug: str,
        *,
        thumbnail_url: str | None = None,
        video_preview_url: str | None = None,
    ) -> MirrorJob | None:
        """Add or merge a job; permanent or missing references are ignored."""
        thumbnail_url = thumbnail_url if is_transient_ref(thumbnail_url) else None
        video_preview_url = video_preview_url if is_transient_ref(video_preview_url) else None
        if not thumbnail_url and not video_preview_url:
            return None

        job = self._jobs.get(slug)
        if job is None:
            job = MirrorJob(
                slug=slug,
                created_at=self._clock(),
                thumbnail_url=thumbnail_url,
                video_preview_url=video_preview_url,
            )
            self._jobs[slug] = job
            logger.debug("mirror.job.enqueued", extra={"slug": slug})
        else:
            job.merge(thumbnail_url=thumbnail_url, video_preview_url=video_preview_url)
        return job

    @property
    def pending(self) -> list[MirrorJob]:
        return [job for job in self._jobs.values() if not job.is_terminal]

    def get(self, slug: str) -> MirrorJob | None:
        return self._jobs.get(slug)

    async def drain(self, concurrency: int = 5) -> MirrorReport:
        """Process every pending job and forget them once reported."""
        jobs = self.pending
        report = MirrorReport()
        if not jobs:
            return report

        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _bounded(job: MirrorJob) -> None:
            async with semaphore:
                await self._process(job)

        logger.info("mirror.drain.start", extra={"jobs": len(jobs), "concurrency": concurrency})
        await asyncio.gather(*(_bounded(job) for job in jobs))

        for job in jobs:
            if job.state is MirrorJobState.COMPLETED:
                report.completed += 1
            else:
                report.failed += 1
                report.failures[job.slug] = job.last_error or "unknown error"
            self._jobs.pop(job.slug, None)

        logger.info(
            "mirror.drain.finished",
            extra={"completed": report.completed, "failed": report.failed},
        )
        return report

    # ------------------------------------------------------------------
    # Job processing
    # ------------------------------------------------------------------
    async def _process(self, job: MirrorJob) -> None:
        while True:
            job.attempts += 1
            job.state = MirrorJobState.UPLOADING
            try:
                await self._mirror_pending(job)
            except ExpiredLinkError as exc:
                job.last_error = str(exc)
                if not job.refreshed and self._refresher is not None:
                    if not await self._refresh(job):
                        return
                    if job.attempts < self._max_attempts:
                        continue
                if self._give_up(job):
                    return
            except (TransientError, UploadError) as exc:
                job.last_error = str(exc)
                if self._give_up(job):
                    return
            except LibrarySyncError as exc:
                self._fail(job, str(exc))
                return
            except Exception as exc:
                logger.exception("mirror.job.crashed", extra={"slug": job.slug})
                self._fail(job, f"unexpected error: {exc}")
                return
            else:
                job.state = MirrorJobState.COMPLETED
                job.last_error = None
                logger.info(
                    "mirror.job.completed",
                    extra={"slug": job.slug, "attempts": job.attempts},
                )
                return

            job.state = MirrorJobState.RETRYING
            delay = self._backoff_seconds * (2 ** (job.attempts - 1))
            logger.warning(
                "mirror.job.retry",
                extra={
                    "slug": job.slug,
                    "attempt": job.attempts,
                    "delay": delay,
                    "error": job.last_error,
                },
            )
            await self._sleep(delay)

    def _give_up(self, job: MirrorJob) -> bool:
        if job.attempts < self._max_attempts:
            return False
        self._fail(job, job.last_error or "retry ceiling reached")
        return True

    def _fail(self, job: MirrorJob, reason: str) -> None:
        job.state = MirrorJobState.PERMANENTLY_FAILED
        job.last_error = reason
        logger.warning(
            "mirror.job.failed",
            extra={"slug": job.slug, "attempts": job.attempts, "error": reason},
        )

    async def _refresh(self, job: MirrorJob) -> bool:
        """Swap expired links for fresh ones; ``False`` when the job is dead."""
        assert self._refresher is not None
        job.refreshed = True
        try:
            info = await self._refresher(job.slug)
        except NotFoundError as exc:
            self._fail(job, f"file vanished remotely: {exc}")
            return False
        except TransientError as exc:
            job.last_error = f"refresh failed: {exc}"
            return True

        fresh = {
            MediaKind.THUMBNAIL: info.thumbnail_url,
            MediaKind.VIDEO_PREVIEW: info.video_preview_url,
        }
        for kind, _ in job.pending_kinds():
            url = fresh[kind]
            if not url:
                self._fail(job, f"remote host no longer offers a {kind.value} link")
                return False
            if kind is MediaKind.THUMBNAIL:
                job.thumbnail_url = url
            else:
                job.video_preview_url = url
        logger.info("mirror.job.refreshed", extra={"slug": job.slug})
        return True

    async def _mirror_pending(self, job: MirrorJob) -> None:
        for kind, url in job.pending_kinds():
            media = await self._downloader.fetch(url)
            key = build_media_key(
                kind,
                media.data,
                when=self._clock(),
                content_type=media.content_type,
                source_url=url,
            )
            ref = await self._storage.upload(media.data, key, content_type=media.content_type)
            async with self._catalog_lock:
                await asyncio.to_thread(self._catalog.patch_media_ref, job.slug, kind, ref)
            job.completed_kinds.add(kind)


__all__ = [
    "MirrorJob",
    "MirrorJobState",
    "MirrorQueue",
    "MirrorReport",
    "Refresher",
]
