"""Catalog domain types and the pure classification helpers."""

from .catalog_models import (
    CatalogEntry,
    ContentType,
    FileUpsert,
    FolderUpsert,
    LibrarySection,
    MediaKind,
    UpsertStatus,
    is_transient_ref,
)
from .classifier import classify

__all__ = [
    "CatalogEntry",
    "ContentType",
    "FileUpsert",
    "FolderUpsert",
    "LibrarySection",
    "MediaKind",
    "UpsertStatus",
    "classify",
    "is_transient_ref",
]
