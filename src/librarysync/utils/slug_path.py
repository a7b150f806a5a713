"""Helpers for URL-safe slug paths and folder-name comparison."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]+")


def _strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_name(value: str | None) -> str:
    """Return a comparison key: decomposed, diacritics removed, lowercased, trimmed."""
    if not value:
        return ""
    return _strip_diacritics(value).strip().lower()


def sanitize_slug_segment(value: str) -> str:
    cleaned = _NON_ALNUM_RE.sub("-", _strip_diacritics(value)).strip("-").lower()
    return cleaned or "item"


def build_slug_path(segments: Iterable[str]) -> str:
    return "/".join(sanitize_slug_segment(segment) for segment in segments)


def build_file_path(segments: Iterable[str]) -> str:
    return "/".join(segments)
