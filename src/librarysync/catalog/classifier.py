"""Map file extensions to catalog content types."""

from __future__ import annotations

from .catalog_models import ContentType, LibrarySection

VIDEO_EXTENSIONS = frozenset({"mp4", "mkv", "avi", "mov", "m4v", "webm", "flv", "wmv"})
AUDIO_EXTENSIONS = frozenset({"mp3", "flac", "wav", "aac", "m4a", "ogg", "wma", "m4b", "opus"})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "svg"})
COMIC_EXTENSIONS = frozenset({"cbz", "cbr", "cb7", "cba", "cbt"})
EBOOK_EXTENSIONS = frozenset({"epub", "mobi", "azw", "azw3"})
ARCHIVE_EXTENSIONS = frozenset({"zip", "rar", "7z", "tar", "gz", "bz2", "xz"})
DOCUMENT_EXTENSIONS = frozenset(
    {"pdf", "doc", "docx", "ppt", "pptx", "xls", "xlsx", "txt", "rtf", "odt", "ods"}
)

_EXTENSION_TABLE: tuple[tuple[frozenset[str], ContentType], ...] = (
    (VIDEO_EXTENSIONS, ContentType.VIDEO),
    (AUDIO_EXTENSIONS, ContentType.AUDIO),
    (IMAGE_EXTENSIONS, ContentType.IMAGE),
    (COMIC_EXTENSIONS, ContentType.COMIC),
    (EBOOK_EXTENSIONS, ContentType.EPUB),
    (ARCHIVE_EXTENSIONS, ContentType.ARCHIVE),
)


def normalize_extension(extension: str | None) -> str:
    return (extension or "").strip().lstrip(".").lower()


def _section_override(ext: str, section: LibrarySection) -> ContentType | None:
    if section is LibrarySection.MAGAZINES:
        return ContentType.MAGAZINE
    if section is LibrarySection.COMICS:
        return ContentType.COMIC
    if section is LibrarySection.EBOOKS:
        if ext == "pdf":
            return ContentType.PDF
        if ext in EBOOK_EXTENSIONS:
            return ContentType.EPUB
    return None


def classify(extension: str | None, section: LibrarySection | str) -> ContentType:
    """Return the catalog content type for a file.

    Section-specific rules win over the plain extension table, so a PDF in the
    e-book section becomes ``pdf`` while anything in the comics section is a
    ``comic``. Unknown or missing extensions classify as ``other``.
    """
    ext = normalize_extension(extension)
    if not isinstance(section, LibrarySection):
        section = LibrarySection.parse(section)

    override = _section_override(ext, section)
    if override is not None:
        return override
    if not ext:
        return ContentType.OTHER

    for extensions, content_type in _EXTENSION_TABLE:
        if ext in extensions:
            return content_type
    if ext in DOCUMENT_EXTENSIONS:
        return ContentType.PDF if ext == "pdf" else ContentType.DOCUMENT
    return ContentType.OTHER


def is_video_extension(extension: str | None) -> bool:
    return normalize_extension(extension) in VIDEO_EXTENSIONS


__all__ = ["classify", "is_video_extension", "normalize_extension"]
