from __future__ import annotations

import asyncio
import threading
from collections import Counter

import httpx
import pytest

from src.librarysync.catalog.catalog_models import (
    ContentType,
    FileUpsert,
    FolderUpsert,
    LibrarySection,
)
from src.librarysync.exceptions import NotFoundError
from src.librarysync.media.media_downloader import MediaDownloader
from src.librarysync.media.object_storage import ObjectStorage
from src.librarysync.remote.remote_models import RemoteFileInfo
from src.librarysync.repositories.catalog_repository import CatalogRepository
from src.librarysync.workers.mirror_queue import MirrorJobState, MirrorQueue
from tests.helpers.remote_host import FakePreviewCdn, MemoryStorage

THUMB = "https://cdn.test/thumb.jpg"
PREVIEW = "https://cdn.test/preview.mp4"


@pytest.fixture
def catalog(session_factory):
    return CatalogRepository(session_factory)


def _add_file(catalog: CatalogRepository, slug: str, *, thumbnail_url=None, video_preview_url=None):
    root = catalog.get_by_slug("root")
    if root is None:
        _, root = catalog.upsert_folder(
            FolderUpsert(
                section=LibrarySection.VIDEOS,
                slug="root",
                title="Videos",
                parent_id=None,
                parent_folder_slug=None,
                file_path="Videos",
                slug_path="videos",
            )
        )
    catalog.upsert_file(
        FileUpsert(
            section=LibrarySection.VIDEOS,
            slug=slug,
            title=f"{slug}.mp4",
            content_type=ContentType.VIDEO,
            parent_id=root.id,
            parent_folder_slug="root",
            file_path=f"Videos/{slug}.mp4",
            slug_path=f"videos/{slug}-mp4",
            thumbnail_url=thumbnail_url,
            video_preview_url=video_preview_url,
        )
    )


def _queue(catalog, storage, downloader, sleeps, **kwargs) -> MirrorQueue:
    return MirrorQueue(
        storage=storage,
        catalog=catalog,
        downloader=downloader,
        sleep=sleeps.append,
        **kwargs,
    )


def test_enqueue_merges_jobs_for_same_slug(catalog):
    queue = _queue(catalog, MemoryStorage(), FakePreviewCdn().downloader(), [])

    first = queue.enqueue("clip", thumbnail_url=THUMB)
    second = queue.enqueue("clip", video_preview_url=PREVIEW)

    assert first is second
    assert len(queue.pending) == 1
    assert first.thumbnail_url == THUMB
    assert first.video_preview_url == PREVIEW


def test_enqueue_ignores_permanent_or_missing_refs(catalog):
    queue = _queue(catalog, MemoryStorage(), FakePreviewCdn().downloader(), [])

    assert queue.enqueue("clip", thumbnail_url="media://thumbnails/a.jpg") is None
    assert queue.enqueue("clip") is None
    assert queue.pending == []


def test_drain_uploads_both_kinds_and_patches_catalog(catalog):
    _add_file(catalog, "clip", thumbnail_url=THUMB, video_preview_url=PREVIEW)
    cdn = FakePreviewCdn()
    cdn.serve(THUMB, b"thumb-bytes")
    cdn.serve(PREVIEW, b"preview-bytes", content_type="video/mp4")
    storage = MemoryStorage()
    queue = _queue(catalog, storage, cdn.downloader(), [])
    queue.enqueue("clip", thumbnail_url=THUMB, video_preview_url=PREVIEW)

    report = asyncio.run(queue.drain(concurrency=5))

    assert (report.completed, report.failed) == (1, 0)
    assert queue.pending == []
    entry = catalog.get_by_slug("clip")
    assert entry.thumbnail_ref.startswith("mem://thumbnails/")
    assert entry.thumbnail_ref.endswith(".jpg")
    assert entry.video_preview_ref.startswith("mem://previews/")
    assert entry.video_preview_ref.endswith(".mp4")
    assert sorted(storage.objects.values()) == [b"preview-bytes", b"thumb-bytes"]


def test_always_failing_upload_stops_at_retry_ceiling(catalog):
    _add_file(catalog, "clip", thumbnail_url=THUMB)
    cdn = FakePreviewCdn()
    cdn.serve(THUMB)
    storage = MemoryStorage(failures=100)
    sleeps: list[float] = []
    queue = _queue(catalog, storage, cdn.downloader(), sleeps, max_attempts=3, backoff_seconds=1.0)
    job = queue.enqueue("clip", thumbnail_url=THUMB)

    report = asyncio.run(queue.drain())

    assert job.state is MirrorJobState.PERMANENTLY_FAILED
    assert job.attempts == 3
    assert storage.attempts == 3
    assert sleeps == [1.0, 2.0]
    assert report.failed == 1
    assert report.failures == {"clip": "storage unavailable"}
    assert catalog.get_by_slug("clip").thumbnail_ref == THUMB


def test_retry_only_redoes_the_kind_that_failed(catalog):
    _add_file(catalog, "clip", thumbnail_url=THUMB, video_preview_url=PREVIEW)
    calls: Counter[str] = Counter()

    def handler(request):
        url = str(request.url)
        calls[url] += 1
        if url == PREVIEW and calls[url] == 1:
            return httpx.Response(503)
        return httpx.Response(200, content=url.encode(), headers={"content-type": "image/jpeg"})

    sleeps: list[float] = []
    downloader = MediaDownloader(transport=httpx.MockTransport(handler))
    queue = _queue(catalog, MemoryStorage(), downloader, sleeps, backoff_seconds=0.5)
    job = queue.enqueue("clip", thumbnail_url=THUMB, video_preview_url=PREVIEW)

    report = asyncio.run(queue.drain())

    assert report.completed == 1
    assert job.attempts == 2
    assert calls[THUMB] == 1
    assert calls[PREVIEW] == 2
    assert sleeps == [0.5]


def test_expired_link_is_refreshed_once(catalog):
    fresh = "https://cdn.test/fresh-thumb.jpg"
    _add_file(catalog, "clip", thumbnail_url=THUMB)
    cdn = FakePreviewCdn()
    cdn.serve(THUMB, status=403)
    cdn.serve(fresh, b"fresh")
    refreshed: list[str] = []

    async def refresher(slug):
        refreshed.append(slug)
        return RemoteFileInfo(slug=slug, name="clip.mp4", extension="mp4", size=1, thumbnail_url=fresh)

    sleeps: list[float] = []
    queue = _queue(catalog, MemoryStorage(), cdn.downloader(), sleeps, refresher=refresher)
    job = queue.enqueue("clip", thumbnail_url=THUMB)

    report = asyncio.run(queue.drain())

    assert report.completed == 1
    assert refreshed == ["clip"]
    assert job.thumbnail_url == fresh
    assert job.attempts == 2
    assert sleeps == []
    assert catalog.get_by_slug("clip").thumbnail_ref.startswith("mem://thumbnails/")


def test_refresh_not_found_fails_without_consuming_retries(catalog):
    _add_file(catalog, "clip", thumbnail_url=THUMB)
    cdn = FakePreviewCdn()
    cdn.serve(THUMB, status=404)

    async def refresher(slug):
        raise NotFoundError("folder deleted")

    sleeps: list[float] = []
    queue = _queue(catalog, MemoryStorage(), cdn.downloader(), sleeps, refresher=refresher, max_attempts=3)
    job = queue.enqueue("clip", thumbnail_url=THUMB)

    report = asyncio.run(queue.drain())

    assert job.state is MirrorJobState.PERMANENTLY_FAILED
    assert job.attempts == 1
    assert cdn.calls[THUMB] == 1
    assert sleeps == []
    assert report.failed == 1
    assert "vanished" in report.failures["clip"]


def test_missing_catalog_entry_fails_job(catalog):
    cdn = FakePreviewCdn()
    cdn.serve(THUMB)
    queue = _queue(catalog, MemoryStorage(), cdn.downloader(), [])
    job = queue.enqueue("ghost", thumbnail_url=THUMB)

    report = asyncio.run(queue.drain())

    assert report.failed == 1
    assert job.attempts == 1


class TrackingStorage(ObjectStorage):
    def __init__(self) -> None:
        self.in_flight = 0
        self.max_in_flight = 0

    async def upload(self, data, key, *, content_type=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return f"mem://{key}"


def test_drain_respects_concurrency_bound(catalog):
    cdn = FakePreviewCdn()
    storage = TrackingStorage()
    queue = _queue(catalog, storage, cdn.downloader(), [])
    for index in range(6):
        url = cdn.serve(f"https://cdn.test/{index}.jpg", f"bytes-{index}".encode())
        _add_file(catalog, f"clip-{index}", thumbnail_url=url)
        queue.enqueue(f"clip-{index}", thumbnail_url=url)

    report = asyncio.run(queue.drain(concurrency=2))

    assert report.completed == 6
    assert storage.max_in_flight == 2


def test_malformed_link_fails_only_its_own_job(catalog):
    cdn = FakePreviewCdn()
    good_url = cdn.serve("https://cdn.test/a.jpg", b"good")
    bad_url = "https://exa\x00mple.com/thumb.jpg"
    _add_file(catalog, "good", thumbnail_url=good_url)
    _add_file(catalog, "bad", thumbnail_url=bad_url)
    sleeps: list[float] = []
    queue = _queue(catalog, MemoryStorage(), cdn.downloader(), sleeps)
    queue.enqueue("good", thumbnail_url=good_url)
    queue.enqueue("bad", thumbnail_url=bad_url)

    report = asyncio.run(queue.drain())

    assert report.completed == 1
    assert report.failed == 1
    assert "bad" in report.failures
    assert catalog.get_by_slug("good").thumbnail_url.startswith("mem://")


class ExplodingDownloader:
    async def fetch(self, url):
        raise RuntimeError("decoder blew up")


def test_unexpected_error_is_reported_as_failure(catalog):
    _add_file(catalog, "clip", thumbnail_url=THUMB)
    queue = _queue(catalog, MemoryStorage(), ExplodingDownloader(), [])
    job = queue.enqueue("clip", thumbnail_url=THUMB)

    report = asyncio.run(queue.drain())

    assert report.failed == 1
    assert job.state is MirrorJobState.PERMANENTLY_FAILED
    assert "decoder blew up" in report.failures["clip"]


class ThreadRecordingCatalog(CatalogRepository):
    def __init__(self, session_factory) -> None:
        super().__init__(session_factory)
        self.patch_threads: list[int] = []

    def patch_media_ref(self, slug, kind, ref):
        self.patch_threads.append(threading.get_ident())
        return super().patch_media_ref(slug, kind, ref)


def test_catalog_patches_run_off_the_event_loop_thread(session_factory):
    catalog = ThreadRecordingCatalog(session_factory)
    cdn = FakePreviewCdn()
    cdn.serve(THUMB)
    _add_file(catalog, "clip", thumbnail_url=THUMB)
    queue = _queue(catalog, MemoryStorage(), cdn.downloader(), [])
    queue.enqueue("clip", thumbnail_url=THUMB)

    report = asyncio.run(queue.drain())

    assert report.completed == 1
    assert catalog.patch_threads
    assert threading.get_ident() not in catalog.patch_threads
