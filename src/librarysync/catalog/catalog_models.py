"""Domain models for catalog entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class LibrarySection(str, Enum):
    """Logical library buckets a remote folder can be mirrored into."""

    VIDEOS = "videos"
    AUDIO = "audio"
    EBOOKS = "ebooks"
    MAGAZINES = "magazines"
    COMICS = "comics"
    IMAGES = "images"
    DOCUMENTS = "documents"
    ARCHIVES = "archives"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "LibrarySection":
        return cls(value.strip().lower())


class ContentType(str, Enum):
    FOLDER = "folder"
    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    EBOOK = "ebook"
    MAGAZINE = "magazine"
    COMIC = "comic"
    PDF = "pdf"
    EPUB = "epub"
    ARCHIVE = "archive"
    DOCUMENT = "document"
    OTHER = "other"


class UpsertStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


class MediaKind(str, Enum):
    """Preview assets that are mirrored into object storage."""

    THUMBNAIL = "thumbnail"
    VIDEO_PREVIEW = "video_preview"

    @property
    def storage_prefix(self) -> str:
        return "thumbnails" if self is MediaKind.THUMBNAIL else "previews"


def is_transient_ref(ref: str | None) -> bool:
    """Return ``True`` when ``ref`` is a remote link that still needs mirroring."""
    if not ref:
        return False
    return ref.startswith(("http://", "https://"))


@dataclass(slots=True)
class CatalogEntry:
    id: str
    slug: str
    title: str
    is_folder: bool
    section: LibrarySection
    content_type: ContentType
    file_path: str
    slug_path: str
    description: str | None = None
    extension: str | None = None
    file_size_bytes: int | None = None
    duration_seconds: int | None = None
    mime_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    parent_id: str | None = None
    parent_folder_slug: str | None = None
    source_url: str | None = None
    thumbnail_ref: str | None = None
    video_preview_ref: str | None = None
    is_available: bool = True
    last_synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def media_ref(self, kind: MediaKind) -> str | None:
        if kind is MediaKind.THUMBNAIL:
            return self.thumbnail_ref
        return self.video_preview_ref

    @property
    def has_transient_media(self) -> bool:
        return is_transient_ref(self.thumbnail_ref) or is_transient_ref(self.video_preview_ref)


@dataclass(slots=True)
class FolderUpsert:
    section: LibrarySection
    slug: str
    title: str
    parent_id: str | None
    parent_folder_slug: str | None
    file_path: str
    slug_path: str
    description: str | None = None
    source_url: str | None = None


@dataclass(slots=True)
class FileUpsert:
    section: LibrarySection
    slug: str
    title: str
    content_type: ContentType
    parent_id: str | None
    parent_folder_slug: str | None
    file_path: str
    slug_path: str
    extension: str | None = None
    file_size_bytes: int | None = None
    duration_seconds: int | None = None
    mime_type: str | None = None
    description: str | None = None
    source_url: str | None = None
    thumbnail_url: str | None = None
    video_preview_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "CatalogEntry",
    "ContentType",
    "FileUpsert",
    "FolderUpsert",
    "LibrarySection",
    "MediaKind",
    "UpsertStatus",
    "is_transient_ref",
]
