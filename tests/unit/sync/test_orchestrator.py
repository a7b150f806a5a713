from __future__ import annotations

import asyncio

import pytest

from src.librarysync.catalog.catalog_models import (
    ContentType,
    FileUpsert,
    LibrarySection,
)
from src.librarysync.exceptions import AuthError
from src.librarysync.repositories.catalog_repository import CatalogRepository
from src.librarysync.sync.orchestrator import LibrarySync, RunReport, SectionReport
from src.librarysync.sync.section_config import SectionConfig
from src.librarysync.workers.mirror_queue import MirrorQueue
from tests.helpers.remote_host import FakePreviewCdn, FakeRemoteHost, MemoryStorage

THUMB = "https://cdn.test/v1-thumb.jpg"
PREVIEW = "https://cdn.test/v1-preview.mp4"
VIDEOS = SectionConfig(LibrarySection.VIDEOS, "Movies", "Films")


@pytest.fixture
def host():
    host = FakeRemoteHost()
    movies = host.add_folder("m1", "Movies")
    season = host.add_folder("s1", "Season 1", movies)
    host.add_file("v1", "show.s01e01.mp4", season, thumbnail=THUMB, video_preview=PREVIEW, duration=1500.6)
    host.add_file("sub1", "show.s01e01.eng.srt", season)
    host.add_file("v2", "show.s01e02.mp4", season)
    host.add_file("img1", "poster.jpg", movies)
    return host


@pytest.fixture
def cdn():
    cdn = FakePreviewCdn()
    cdn.serve(THUMB, b"thumb")
    cdn.serve(PREVIEW, b"preview", content_type="video/mp4")
    return cdn


@pytest.fixture
def catalog(session_factory):
    return CatalogRepository(session_factory)


def _sync(host, cdn, catalog, *, max_attempts=3, sleeps=None, **kwargs) -> LibrarySync:
    queue = MirrorQueue(
        storage=MemoryStorage(),
        catalog=catalog,
        downloader=cdn.downloader(),
        max_attempts=max_attempts,
        sleep=lambda _: None,
    )
    kwargs.setdefault("file_detail_delay", 0)
    return LibrarySync(
        client=host.client(),
        catalog=catalog,
        mirror_queue=queue,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
        **kwargs,
    )


def _run(sync: LibrarySync, *sections: SectionConfig) -> RunReport:
    return asyncio.run(sync.run(list(sections) or [VIDEOS]))


def test_first_run_builds_catalog_tree(host, cdn, catalog):
    report = _run(_sync(host, cdn, catalog))
    section = report.sections[0]

    assert (section.folders_created, section.files_created) == (2, 4)
    assert (section.files_skipped, section.folders_skipped) == (0, 0)
    assert (section.mirror_completed, section.mirror_failed) == (1, 0)
    assert report.exit_code() == 0

    root = catalog.get_by_slug("m1")
    assert root.title == "Films"
    assert root.parent_id is None
    assert root.description == "Root folder for videos library"

    season = catalog.get_by_slug("s1")
    assert season.parent_id == root.id
    assert season.file_path == "Films/Season 1"

    video = catalog.get_by_slug("v1")
    assert video.parent_id == season.id
    assert video.content_type is ContentType.VIDEO
    assert video.file_path == "Films/Season 1/show.s01e01.mp4"
    assert video.slug_path == "films/season-1/show-s01e01-mp4"
    assert video.duration_seconds == 1501
    assert video.thumbnail_ref.startswith("mem://thumbnails/")
    assert video.video_preview_ref.startswith("mem://previews/")
    assert video.metadata["episodeNumber"] == 1
    assert video.metadata["hasSubtitles"] is True
    assert video.metadata["subtitles"] == [
        {"language": "eng", "label": "English", "slug": "sub1", "title": "show.s01e01.eng.srt"}
    ]
    assert video.metadata["thumbnailUrl"] == THUMB

    second_episode = catalog.get_by_slug("v2")
    assert second_episode.metadata["episodeNumber"] == 2
    assert second_episode.metadata["hasSubtitles"] is False

    assert catalog.get_by_slug("sub1").content_type is ContentType.OTHER
    assert catalog.get_by_slug("img1").content_type is ContentType.IMAGE


def test_second_run_is_idempotent(host, cdn, catalog):
    _run(_sync(host, cdn, catalog))
    count = catalog.count()

    section = _run(_sync(host, cdn, catalog)).sections[0]

    assert (section.folders_created, section.files_created) == (0, 0)
    assert (section.folders_updated, section.files_updated) == (2, 4)
    assert section.mirror_completed == 0
    assert catalog.count() == count
    assert catalog.get_by_slug("v1").thumbnail_ref.startswith("mem://")


def test_pending_media_from_aborted_run_is_recovered(host, cdn, catalog):
    _run(_sync(host, cdn, catalog))
    orphan_url = cdn.serve("https://cdn.test/orphan.jpg", b"orphan")
    root = catalog.get_by_slug("m1")
    # left behind by a run that died before draining its queue
    catalog.upsert_file(
        FileUpsert(
            section=LibrarySection.VIDEOS,
            slug="orphan",
            title="orphan.mp4",
            content_type=ContentType.VIDEO,
            parent_id=root.id,
            parent_folder_slug="m1",
            file_path="Films/orphan.mp4",
            slug_path="films/orphan-mp4",
            thumbnail_url=orphan_url,
        )
    )

    section = _run(_sync(host, cdn, catalog)).sections[0]

    assert section.mirror_completed == 1
    assert catalog.get_by_slug("orphan").thumbnail_ref.startswith("mem://thumbnails/")


def test_failed_mirror_is_retried_on_next_run(host, catalog):
    broken = FakePreviewCdn()
    broken.serve(THUMB, status=503)
    broken.serve(PREVIEW, status=503)

    first = _run(_sync(host, broken, catalog, max_attempts=2)).sections[0]
    assert first.mirror_failed == 1
    assert "v1" in first.mirror_failures
    assert catalog.get_by_slug("v1").thumbnail_ref == THUMB

    fixed = FakePreviewCdn()
    fixed.serve(THUMB, b"thumb")
    fixed.serve(PREVIEW, b"preview")
    second = _run(_sync(host, fixed, catalog)).sections[0]

    assert second.mirror_completed == 1
    assert catalog.get_by_slug("v1").thumbnail_ref.startswith("mem://")


def test_unresolvable_section_does_not_stop_later_sections(host, cdn, catalog):
    music = host.add_folder("mu1", "Music")
    host.add_file("song", "track01.mp3", music)
    missing = SectionConfig(LibrarySection.VIDEOS, "Nope")
    audio = SectionConfig(LibrarySection.AUDIO, "Music")

    report = _run(_sync(host, cdn, catalog), missing, audio)

    assert report.sections[0].failed
    assert "Nope" in report.sections[0].error
    assert report.sections[1].files_created == 1
    assert report.exit_code() == 0
    assert "[videos] FAILED" in report.render_summary()
    assert host.login_calls == 1


def test_last_section_failing_sets_exit_code(host, cdn, catalog):
    report = _run(_sync(host, cdn, catalog), VIDEOS, SectionConfig(LibrarySection.AUDIO, "Nope"))
    assert report.exit_code() == 1


def test_login_failure_aborts_run(host, cdn, catalog):
    host.reject_login = True
    with pytest.raises(AuthError):
        _run(_sync(host, cdn, catalog))


def test_item_failures_are_counted_not_fatal(host, cdn, catalog):
    host.detail_status["img1"] = 404
    host.listing_status["s1"] = 500

    section = _run(_sync(host, cdn, catalog)).sections[0]

    assert section.files_skipped == 1
    assert section.folders_skipped == 1
    assert section.files_created == 0
    assert catalog.get_by_slug("s1") is not None
    assert catalog.get_by_slug("v1") is None


def test_mark_missing_tombstones_removed_entries(host, cdn, catalog):
    _run(_sync(host, cdn, catalog))
    host.remove("img1")

    section = _run(_sync(host, cdn, catalog, mark_missing=True)).sections[0]

    assert section.missing_marked == 1
    assert catalog.get_by_slug("img1").is_available is False
    assert catalog.get_by_slug("v1").is_available is True


def test_mark_missing_skipped_after_partial_walk(host, cdn, catalog):
    _run(_sync(host, cdn, catalog))
    host.listing_status["s1"] = 500

    section = _run(_sync(host, cdn, catalog, mark_missing=True)).sections[0]

    assert section.missing_marked == 0
    assert catalog.get_by_slug("v1").is_available is True


def test_walk_depth_limit_stops_descent(host, cdn, catalog):
    section = _run(_sync(host, cdn, catalog, walk_max_depth=1)).sections[0]

    assert section.folders_created == 2
    assert catalog.get_by_slug("img1") is not None
    assert catalog.get_by_slug("v1") is None
    assert host.listing_calls["s1"] == 0


def test_file_detail_fetches_are_spaced(host, cdn, catalog):
    sleeps: list[float] = []
    _run(_sync(host, cdn, catalog, sleeps=sleeps, file_detail_delay=0.2))

    assert sleeps == [0.2, 0.2, 0.2]
    assert sum(host.detail_calls.values()) == 4


def test_run_report_summary_lists_counts():
    report = RunReport(
        sections=[
            SectionReport(
                section=LibrarySection.VIDEOS,
                folder_reference="Movies",
                files_created=3,
                mirror_failed=1,
                mirror_failures={"v1": "storage unavailable"},
            )
        ]
    )

    summary = report.render_summary()

    assert "[videos]" in summary
    assert "files created=3" in summary
    assert "mirror failed for v1: storage unavailable" in summary
    assert report.exit_code() == 0
