"""Drive one sync run: resolve, walk, upsert, mirror, report."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..catalog.catalog_models import (
    CatalogEntry,
    ContentType,
    FileUpsert,
    FolderUpsert,
    LibrarySection,
    UpsertStatus,
)
from ..catalog.classifier import classify, is_video_extension
from ..catalog.episodes import assign_episode_numbers, is_subtitle_file, pair_subtitles
from ..exceptions import (
    CatalogIntegrityError,
    NotFoundError,
    ResolutionError,
    TransientError,
)
from ..remote.remote_client import RemoteClient
from ..remote.remote_models import RemoteEntry, RemoteFileInfo, RemoteSession, extension_from_name
from ..repositories.catalog_repository import CatalogRepository
from ..utils.async_utils import wrap_sleep
from ..utils.slug_path import build_file_path, build_slug_path
from ..workers.mirror_queue import MirrorQueue
from .folder_resolver import FolderListingCache, FolderResolver, ResolvedFolder
from .section_config import SectionConfig

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class SectionReport:
    section: LibrarySection
    folder_reference: str
    root_slug: str | None = None
    folders_created: int = 0
    folders_updated: int = 0
    files_created: int = 0
    files_updated: int = 0
    files_skipped: int = 0
    folders_skipped: int = 0
    mirror_completed: int = 0
    mirror_failed: int = 0
    missing_marked: int = 0
    mirror_failures: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def count_folder(self, status: UpsertStatus) -> None:
        if status is UpsertStatus.CREATED:
            self.folders_created += 1
        else:
            self.folders_updated += 1

    def count_file(self, status: UpsertStatus) -> None:
        if status is UpsertStatus.CREATED:
            self.files_created += 1
        elif status is UpsertStatus.UPDATED:
            self.files_updated += 1
        else:
            self.files_skipped += 1


@dataclass(slots=True)
class RunReport:
    sections: list[SectionReport] = field(default_factory=list)

    def render_summary(self) -> str:
        lines = []
        for report in self.sections:
            if report.failed:
                lines.append(f"[{report.section.value}] FAILED: {report.error}")
                continue
            lines.append(
                f"[{report.section.value}] folders created={report.folders_created} "
                f"updated={report.folders_updated} skipped={report.folders_skipped}; "
                f"files created={report.files_created} updated={report.files_updated} "
                f"skipped={report.files_skipped}; mirror completed={report.mirror_completed} "
                f"failed={report.mirror_failed}; missing marked={report.missing_marked}"
            )
            for slug, reason in sorted(report.mirror_failures.items()):
                lines.append(f"  mirror failed for {slug}: {reason}")
        return "\n".join(lines)

    def exit_code(self) -> int:
        if self.sections and self.sections[-1].failed:
            return 1
        return 0


@dataclass(slots=True)
class _Frame:
    slug: str
    entry_id: str
    title_path: list[str]
    depth: int


class LibrarySync:
    """Mirror configured remote folders into the catalog, one section at a time.

    The remote session is created on first use and reused for every section.
    ``AuthError`` propagates and aborts the whole run; a section whose folder
    cannot be resolved is reported as failed and the next section proceeds.
    """

    def __init__(
        self,
        *,
        client: RemoteClient,
        catalog: CatalogRepository,
        mirror_queue: MirrorQueue,
        resolver_max_depth: int = 8,
        walk_max_depth: int = 32,
        file_detail_delay: float = 0.2,
        mirror_concurrency: int = 5,
        mark_missing: bool = False,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._mirror_queue = mirror_queue
        self._resolver_max_depth = resolver_max_depth
        self._walk_max_depth = max(1, walk_max_depth)
        self._file_detail_delay = max(0.0, file_detail_delay)
        self._mirror_concurrency = max(1, mirror_concurrency)
        self._mark_missing = mark_missing
        self._sleep = wrap_sleep(sleep)
        self._session: RemoteSession | None = None

    async def run(self, sections: Sequence[SectionConfig]) -> RunReport:
        run_report = RunReport()
        for config in sections:
            with structlog.contextvars.bound_contextvars(section=config.section.value):
                run_report.sections.append(await self.sync_section(config))
        return run_report

    async def _ensure_session(self) -> RemoteSession:
        if self._session is None:
            self._session = await self._client.login()
            session = self._session
            self._mirror_queue.set_refresher(
                lambda slug: self._client.get_file_detail(session, slug)
            )
        return self._session

    async def sync_section(self, config: SectionConfig) -> SectionReport:
        report = SectionReport(section=config.section, folder_reference=config.folder_reference)
        session = await self._ensure_session()
        cache = FolderListingCache(client=self._client, session=session)
        logger.info("sync.section.start", reference=config.folder_reference)

        try:
            resolved = await FolderResolver(cache, max_depth=self._resolver_max_depth).resolve(
                config.folder_reference
            )
        except (ResolutionError, TransientError) as exc:
            report.error = str(exc)
            logger.error("sync.section.resolve_failed", reference=config.folder_reference, error=str(exc))
            return report

        report.root_slug = resolved.slug
        root, root_path = self._upsert_root(config, resolved, report)
        seen: set[str] = {root.slug}

        for pending in self._catalog.list_pending_media(config.section):
            self._mirror_queue.enqueue(
                pending.slug,
                thumbnail_url=pending.thumbnail_ref,
                video_preview_url=pending.video_preview_ref,
            )
        if self._mirror_queue.pending:
            logger.info("sync.section.recovered_media", jobs=len(self._mirror_queue.pending))

        await self._walk(config.section, cache, root, root_path, session, report, seen)

        mirror_report = await self._mirror_queue.drain(self._mirror_concurrency)
        report.mirror_completed = mirror_report.completed
        report.mirror_failed = mirror_report.failed
        report.mirror_failures = dict(mirror_report.failures)

        if self._mark_missing:
            if report.folders_skipped:
                logger.warning("sync.section.reconcile_skipped", folders_skipped=report.folders_skipped)
            else:
                report.missing_marked = self._catalog.mark_missing(config.section, seen)

        logger.info(
            "sync.section.finished",
            folders_created=report.folders_created,
            folders_updated=report.folders_updated,
            files_created=report.files_created,
            files_updated=report.files_updated,
            files_skipped=report.files_skipped,
            mirror_completed=report.mirror_completed,
            mirror_failed=report.mirror_failed,
            remote_fetches=cache.fetch_count,
        )
        return report

    def _upsert_root(
        self, config: SectionConfig, resolved: ResolvedFolder, report: SectionReport
    ) -> tuple[CatalogEntry, list[str]]:
        title_path = list(resolved.path_segments)
        if config.display_name:
            if title_path:
                title_path[-1] = config.display_name
            else:
                title_path = [config.display_name]
        if not title_path:
            title_path = [config.section.value]

        status, entry = self._catalog.upsert_folder(
            FolderUpsert(
                section=config.section,
                slug=resolved.slug,
                title=title_path[-1],
                parent_id=None,
                parent_folder_slug=None,
                file_path=build_file_path(title_path),
                slug_path=build_slug_path(title_path),
                description=f"Root folder for {config.section.value} library",
            )
        )
        report.count_folder(status)
        return entry, title_path

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------
    async def _walk(
        self,
        section: LibrarySection,
        cache: FolderListingCache,
        root: CatalogEntry,
        root_path: list[str],
        session: RemoteSession,
        report: SectionReport,
        seen: set[str],
    ) -> None:
        stack = [_Frame(slug=root.slug, entry_id=root.id, title_path=root_path, depth=0)]
        visited: set[str] = set()
        detail_fetches = 0

        while stack:
            frame = stack.pop()
            if frame.slug in visited:
                continue
            visited.add(frame.slug)

            try:
                entries = await cache.children(frame.slug)
            except (NotFoundError, TransientError) as exc:
                report.folders_skipped += 1
                logger.warning("sync.walk.listing_failed", slug=frame.slug, error=str(exc))
                continue

            files = [entry for entry in entries if not entry.is_folder]
            folders = [entry for entry in entries if entry.is_folder]
            annotations = _file_annotations(files)

            for entry in files:
                seen.add(entry.slug)
                if detail_fetches and self._file_detail_delay:
                    await self._sleep(self._file_detail_delay)
                detail_fetches += 1
                await self._sync_file(section, frame, entry, session, annotations.get(entry.slug, {}), report)

            children: list[_Frame] = []
            for entry in folders:
                if entry.slug in visited:
                    logger.debug("sync.walk.already_visited", slug=entry.slug)
                    continue
                seen.add(entry.slug)
                title_path = [*frame.title_path, entry.name]
                status, folder = self._catalog.upsert_folder(
                    FolderUpsert(
                        section=section,
                        slug=entry.slug,
                        title=entry.name,
                        parent_id=frame.entry_id,
                        parent_folder_slug=frame.slug,
                        file_path=build_file_path(title_path),
                        slug_path=build_slug_path(title_path),
                        description=entry.description,
                        source_url=entry.url,
                    )
                )
                report.count_folder(status)
                if frame.depth + 1 >= self._walk_max_depth:
                    logger.warning("sync.walk.depth_limit", slug=entry.slug, depth=frame.depth + 1)
                    continue
                children.append(
                    _Frame(slug=entry.slug, entry_id=folder.id, title_path=title_path, depth=frame.depth + 1)
                )
            # reversed so the first listed folder is walked first
            stack.extend(reversed(children))

    async def _sync_file(
        self,
        section: LibrarySection,
        frame: _Frame,
        entry: RemoteEntry,
        session: RemoteSession,
        metadata: dict[str, Any],
        report: SectionReport,
    ) -> None:
        try:
            info = await self._client.get_file_detail(session, entry.slug)
        except (NotFoundError, TransientError) as exc:
            report.count_file(UpsertStatus.SKIPPED)
            logger.warning("sync.file.skipped", slug=entry.slug, error=str(exc))
            return

        params = _file_upsert(section, frame, entry, info, metadata)
        try:
            status, stored = self._catalog.upsert_file(params)
        except CatalogIntegrityError as exc:
            report.count_file(UpsertStatus.SKIPPED)
            logger.warning("sync.file.rejected", slug=entry.slug, error=str(exc))
            return
        report.count_file(status)
        self._mirror_queue.enqueue(
            stored.slug,
            thumbnail_url=stored.thumbnail_ref,
            video_preview_url=stored.video_preview_ref,
        )


def _file_annotations(files: list[RemoteEntry]) -> dict[str, dict[str, Any]]:
    """Episode numbers and paired subtitles for the video files of one folder."""
    videos = [entry for entry in files if is_video_extension(extension_from_name(entry.name))]
    subtitles = [entry for entry in files if is_subtitle_file(entry.name)]
    by_name = {entry.name: entry for entry in files}

    annotations: dict[str, dict[str, Any]] = {}
    numbers = assign_episode_numbers([video.name for video in videos])
    for video, number in zip(videos, numbers):
        annotations[video.slug] = {"episodeNumber": number, "subtitles": [], "hasSubtitles": False}

    for match in pair_subtitles([video.name for video in videos], [sub.name for sub in subtitles]):
        video = by_name[match.video_name]
        subtitle = by_name[match.subtitle_name]
        meta = annotations[video.slug]
        meta["subtitles"].append(
            {
                "language": match.language.code,
                "label": match.language.label,
                "slug": subtitle.slug,
                "title": subtitle.name,
            }
        )
        meta["hasSubtitles"] = True
    return annotations


def _file_upsert(
    section: LibrarySection,
    frame: _Frame,
    entry: RemoteEntry,
    info: RemoteFileInfo,
    metadata: dict[str, Any],
) -> FileUpsert:
    title = info.name if info.name and info.name != "unknown" else entry.name
    extension = info.extension or extension_from_name(entry.name)
    content_type: ContentType = classify(extension, section)
    title_path = [*frame.title_path, title]
    return FileUpsert(
        section=section,
        slug=entry.slug,
        title=title,
        content_type=content_type,
        parent_id=frame.entry_id,
        parent_folder_slug=frame.slug,
        file_path=build_file_path(title_path),
        slug_path=build_slug_path(title_path),
        extension=extension,
        file_size_bytes=info.size if info.size is not None else entry.size,
        duration_seconds=int(round(info.duration)) if info.duration is not None else None,
        mime_type=info.content_type,
        description=info.description or entry.description,
        source_url=info.url or entry.url,
        thumbnail_url=info.thumbnail_url,
        video_preview_url=info.video_preview_url,
        metadata=dict(metadata),
    )


__all__ = ["LibrarySync", "RunReport", "SectionReport"]
