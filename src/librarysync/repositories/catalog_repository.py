"""Persistence layer for catalog_entry records."""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..catalog.catalog_models import (
    CatalogEntry,
    ContentType,
    FileUpsert,
    FolderUpsert,
    LibrarySection,
    MediaKind,
    UpsertStatus,
    is_transient_ref,
)
from ..db.db_models import CatalogEntryModel
from ..exceptions import CatalogIntegrityError, NotFoundError, handle_sqlalchemy_errors

_TRANSIENT_PREFIXES = ("http://%", "https://%")


class CatalogRepository:
    """Create, update and query mirrored folders and files, keyed by slug."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or datetime.utcnow

    def upsert_folder(self, params: FolderUpsert) -> tuple[UpsertStatus, CatalogEntry]:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="catalog_entry"):
            self._check_parent(session, params.parent_id, params.section)
            model, status = self._get_or_create(session, params.slug)
            model.title = params.title
            model.description = params.description
            model.is_folder = True
            model.section = params.section.value
            model.content_type = ContentType.FOLDER.value
            model.parent_id = params.parent_id
            model.parent_folder_slug = params.parent_folder_slug
            model.file_path = params.file_path
            model.slug_path = params.slug_path
            model.source_url = params.source_url
            self._touch(model)
            session.commit()
            return status, self._to_domain(model)

    def upsert_file(self, params: FileUpsert) -> tuple[UpsertStatus, CatalogEntry]:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="catalog_entry"):
            self._check_parent(session, params.parent_id, params.section)
            model, status = self._get_or_create(session, params.slug)
            if status is UpsertStatus.UPDATED and model.is_folder:
                raise CatalogIntegrityError(f"catalog_entry: '{params.slug}' is a folder, not a file")

            metadata = _load_metadata(model.metadata_json)
            metadata.update(params.metadata)
            for key, value in (
                ("thumbnailUrl", params.thumbnail_url),
                ("videoPreviewUrl", params.video_preview_url),
            ):
                if value:
                    metadata[key] = value
                else:
                    metadata.pop(key, None)

            model.title = params.title
            model.description = params.description
            model.is_folder = False
            model.section = params.section.value
            model.content_type = params.content_type.value
            model.extension = params.extension
            model.file_size_bytes = params.file_size_bytes
            model.duration_seconds = params.duration_seconds
            model.mime_type = params.mime_type
            model.metadata_json = json.dumps(metadata, sort_keys=True)
            model.parent_id = params.parent_id
            model.parent_folder_slug = params.parent_folder_slug
            model.file_path = params.file_path
            model.slug_path = params.slug_path
            model.source_url = params.source_url
            model.thumbnail_ref = _merge_media_ref(model.thumbnail_ref, params.thumbnail_url)
            model.video_preview_ref = _merge_media_ref(model.video_preview_ref, params.video_preview_url)
            self._touch(model)
            session.commit()
            return status, self._to_domain(model)

    def get_by_slug(self, slug: str) -> CatalogEntry | None:
        with self._session_factory() as session:
            model = self._find(session, slug)
            return self._to_domain(model) if model is not None else None

    def list_section(self, section: LibrarySection) -> list[CatalogEntry]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(CatalogEntryModel)
                .where(CatalogEntryModel.section == section.value)
                .order_by(CatalogEntryModel.file_path)
            ).all()
            return [self._to_domain(row) for row in rows]

    def count(self) -> int:
        with self._session_factory() as session:
            return session.query(CatalogEntryModel).count()

    def list_pending_media(self, section: LibrarySection) -> list[CatalogEntry]:
        """Entries of ``section`` still pointing at transient preview links."""
        conditions = [
            column.like(prefix)
            for column in (CatalogEntryModel.thumbnail_ref, CatalogEntryModel.video_preview_ref)
            for prefix in _TRANSIENT_PREFIXES
        ]
        with self._session_factory() as session:
            rows = session.scalars(
                select(CatalogEntryModel).where(
                    CatalogEntryModel.section == section.value,
                    CatalogEntryModel.is_folder.is_(False),
                    or_(*conditions),
                )
            ).all()
            return [self._to_domain(row) for row in rows]

    def patch_media_ref(self, slug: str, kind: MediaKind, ref: str) -> CatalogEntry:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="catalog_entry"):
            model = self._find(session, slug)
            if model is None:
                raise NotFoundError(f"Catalog entry '{slug}' not found")
            if kind is MediaKind.THUMBNAIL:
                model.thumbnail_ref = ref
            else:
                model.video_preview_ref = ref
            model.updated_at = self._clock()
            session.commit()
            return self._to_domain(model)

    def mark_missing(self, section: LibrarySection, seen_slugs: Iterable[str]) -> int:
        """Flag entries of ``section`` that were not seen as unavailable."""
        seen = set(seen_slugs)
        now = self._clock()
        marked = 0
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="catalog_entry"):
            rows = session.scalars(
                select(CatalogEntryModel).where(
                    CatalogEntryModel.section == section.value,
                    CatalogEntryModel.is_available.is_(True),
                )
            ).all()
            for row in rows:
                if row.slug in seen:
                    continue
                row.is_available = False
                row.updated_at = now
                marked += 1
            session.commit()
        return marked

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _find(session: Session, slug: str) -> CatalogEntryModel | None:
        return session.scalars(
            select(CatalogEntryModel).where(CatalogEntryModel.slug == slug)
        ).one_or_none()

    def _get_or_create(self, session: Session, slug: str) -> tuple[CatalogEntryModel, UpsertStatus]:
        model = self._find(session, slug)
        if model is not None:
            return model, UpsertStatus.UPDATED
        now = self._clock()
        model = CatalogEntryModel(
            id=uuid.uuid4().hex,
            slug=slug,
            metadata_json="{}",
            created_at=now,
            updated_at=now,
        )
        session.add(model)
        return model, UpsertStatus.CREATED

    @staticmethod
    def _check_parent(session: Session, parent_id: str | None, section: LibrarySection) -> None:
        if parent_id is None:
            return
        parent = session.get(CatalogEntryModel, parent_id)
        if parent is None:
            raise CatalogIntegrityError(f"catalog_entry: parent '{parent_id}' does not exist")
        if not parent.is_folder:
            raise CatalogIntegrityError(f"catalog_entry: parent '{parent.slug}' is not a folder")
        if parent.section != section.value:
            raise CatalogIntegrityError(
                f"catalog_entry: parent '{parent.slug}' belongs to section '{parent.section}'"
            )

    def _touch(self, model: CatalogEntryModel) -> None:
        now = self._clock()
        model.is_available = True
        model.last_synced_at = now
        model.updated_at = now

    @staticmethod
    def _to_domain(model: CatalogEntryModel) -> CatalogEntry:
        return CatalogEntry(
            id=model.id,
            slug=model.slug,
            title=model.title,
            is_folder=model.is_folder,
            section=LibrarySection(model.section),
            content_type=ContentType(model.content_type),
            file_path=model.file_path,
            slug_path=model.slug_path,
            description=model.description,
            extension=model.extension,
            file_size_bytes=model.file_size_bytes,
            duration_seconds=model.duration_seconds,
            mime_type=model.mime_type,
            metadata=_load_metadata(model.metadata_json),
            parent_id=model.parent_id,
            parent_folder_slug=model.parent_folder_slug,
            source_url=model.source_url,
            thumbnail_ref=model.thumbnail_ref,
            video_preview_ref=model.video_preview_ref,
            is_available=model.is_available,
            last_synced_at=model.last_synced_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


def _load_metadata(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


def _merge_media_ref(current: str | None, incoming: str | None) -> str | None:
    """Keep a mirrored reference; otherwise track the newest transient link."""
    if current and not is_transient_ref(current):
        return current
    return incoming


__all__ = ["CatalogRepository"]
