"""Typed views of remote host responses and the adapters that build them.

The remote API is inconsistent about field names between endpoints and
versions; the adapters below are the only place that knows about that.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Iterable, Mapping


@dataclass(frozen=True, slots=True)
class RemoteSession:
    """Authenticated session returned by ``RemoteClient.login``."""

    token: str
    user_login: str


@dataclass(frozen=True, slots=True)
class RemoteEntry:
    slug: str
    name: str
    is_folder: bool
    size: int = 0
    description: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class RemoteFileInfo:
    slug: str
    name: str
    extension: str | None
    size: int | None
    duration: float | None = None
    content_type: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    video_preview_url: str | None = None
    parent_folder_slug: str | None = None
    url: str | None = None


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _nested(raw: Mapping[str, Any], container: str, *keys: str) -> Any:
    inner = raw.get(container)
    if isinstance(inner, Mapping):
        return _first(inner, *keys)
    return None


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_folder(raw: Mapping[str, Any], default: bool) -> bool:
    for key in ("is_folder", "isFolder"):
        if key in raw and isinstance(raw[key], bool):
            return raw[key]
    kind = _first(raw, "type", "kind", "entry_type")
    if isinstance(kind, str) and kind.lower() in {"folder", "dir", "directory"}:
        return True
    return default


def extension_from_name(name: str | None) -> str | None:
    if not name:
        return None
    suffix = PurePosixPath(name).suffix
    return suffix[1:].lower() if suffix else None


def to_remote_entry(raw: Mapping[str, Any], *, default_is_folder: bool = False) -> RemoteEntry | None:
    """Normalise one listing item; returns ``None`` for items without a slug."""
    slug = _first(raw, "slug", "id")
    if slug is None:
        return None
    name = _first(raw, "name", "filename", "title") or str(slug)
    return RemoteEntry(
        slug=str(slug),
        name=str(name).strip(),
        is_folder=_is_folder(raw, default_is_folder),
        size=_as_int(_first(raw, "size", "filesize", "file_size")) or 0,
        description=_first(raw, "description"),
        url=_first(raw, "url", "link"),
    )


def to_remote_entries(payload: Mapping[str, Any] | None) -> list[RemoteEntry]:
    """Merge every child collection a listing response may carry."""
    if not payload:
        return []

    entries: list[RemoteEntry] = []
    seen: set[str] = set()

    def _collect(items: Iterable[Any], default_is_folder: bool) -> None:
        for item in items or ():
            if not isinstance(item, Mapping):
                continue
            entry = to_remote_entry(item, default_is_folder=default_is_folder)
            if entry is None or entry.slug in seen:
                continue
            seen.add(entry.slug)
            entries.append(entry)

    for key in ("folders", "subfolders"):
        _collect(payload.get(key) or (), True)
    for key in ("items", "files"):
        _collect(payload.get(key) or (), False)
    return entries


def to_remote_file_info(slug: str, raw: Mapping[str, Any]) -> RemoteFileInfo:
    """Normalise a file-detail response."""
    name = str(_first(raw, "name", "filename", "title") or "unknown")
    extension = _first(raw, "extension", "ext")
    if isinstance(extension, str):
        extension = extension.lstrip(".").lower() or None
    else:
        extension = extension_from_name(name)

    thumbnail = _first(raw, "thumbnail", "thumbnailUrl", "thumbnail_url") or _nested(
        raw, "preview", "thumbnail", "image", "small_image"
    )
    video_preview = _first(raw, "video_preview", "videoPreview", "video_preview_url") or _nested(
        raw, "preview", "video", "video_preview"
    )

    return RemoteFileInfo(
        slug=str(_first(raw, "slug") or slug),
        name=name,
        extension=extension,
        size=_as_int(_first(raw, "size", "filesize", "file_size")),
        duration=_as_float(_first(raw, "duration", "length")),
        content_type=_first(raw, "contentType", "content_type", "mime_type", "mimetype"),
        description=_first(raw, "description"),
        thumbnail_url=thumbnail,
        video_preview_url=video_preview,
        parent_folder_slug=_first(raw, "folder_slug", "folderSlug", "parent_folder_slug"),
        url=_first(raw, "url", "link"),
    )


__all__ = [
    "RemoteEntry",
    "RemoteFileInfo",
    "RemoteSession",
    "extension_from_name",
    "to_remote_entries",
    "to_remote_entry",
    "to_remote_file_info",
]
