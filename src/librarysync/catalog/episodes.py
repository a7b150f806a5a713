"""Filename heuristics for episode numbers and subtitle pairing.

Everything here is pure string processing so new naming schemes can be
covered by adding patterns and unit tests only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from .classifier import VIDEO_EXTENSIONS
from .languages import DEFAULT_LANGUAGE, language_label, normalize_language_code

SUBTITLE_EXTENSIONS = frozenset({"srt", "vtt", "ass", "ssa"})

EPISODE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"episode[\s_-]?(\d+)", re.IGNORECASE),
    re.compile(r"ep[\s_-]?(\d+)", re.IGNORECASE),
    re.compile(r"[Ee](\d+)"),
    re.compile(r"[\s_-](\d{1,3})[\s_-]"),
    re.compile(r"^(\d{1,3})[._-]"),
)

MIN_EPISODE = 1
MAX_EPISODE = 999

_SUBTITLE_EXT_RE = re.compile(r"\.(%s)$" % "|".join(sorted(SUBTITLE_EXTENSIONS)), re.IGNORECASE)
_VIDEO_EXT_RE = re.compile(r"\.(%s)$" % "|".join(sorted(VIDEO_EXTENSIONS)), re.IGNORECASE)
_LANGUAGE_SUFFIX_RE = re.compile(r"\.([A-Za-z]{2,3})$")


@dataclass(frozen=True, slots=True)
class SubtitleLanguage:
    code: str
    label: str


@dataclass(frozen=True, slots=True)
class SubtitleMatch:
    video_name: str
    subtitle_name: str
    language: SubtitleLanguage


def extract_episode_number(filename: str) -> int | None:
    """Return the first in-range episode number found in ``filename``."""
    for pattern in EPISODE_PATTERNS:
        match = pattern.search(filename)
        if not match:
            continue
        number = int(match.group(1))
        if MIN_EPISODE <= number <= MAX_EPISODE:
            return number
    return None


def assign_episode_numbers(filenames: Sequence[str]) -> list[int]:
    """Extract episode numbers, falling back to the 1-based position."""
    return [
        extract_episode_number(name) or index
        for index, name in enumerate(filenames, start=1)
    ]


def is_subtitle_file(filename: str) -> bool:
    return bool(_SUBTITLE_EXT_RE.search(filename))


def _language_suffix(stem: str) -> tuple[str, str | None]:
    match = _LANGUAGE_SUFFIX_RE.search(stem)
    if not match:
        return stem, None
    token = match.group(1).lower()
    code = normalize_language_code(token)
    if code is None:
        # unlisted three-letter codes still count, two-letter ones must be known
        if len(token) != 3:
            return stem, None
        code = token
    return stem[: match.start()], code


def subtitle_base_name(filename: str) -> str:
    """Strip subtitle extension, language code and video extension."""
    name = filename.strip()
    stripped = _SUBTITLE_EXT_RE.sub("", name)
    if stripped != name:
        stripped, _ = _language_suffix(stripped)
    return _VIDEO_EXT_RE.sub("", stripped)


def parse_subtitle_language(filename: str) -> SubtitleLanguage:
    """Read the ``.xxx.`` language segment in front of the subtitle extension."""
    stem = _SUBTITLE_EXT_RE.sub("", filename.strip())
    _, code = _language_suffix(stem)
    code = code or DEFAULT_LANGUAGE
    return SubtitleLanguage(code=code, label=language_label(code))


def pair_subtitles(
    video_names: Iterable[str],
    subtitle_names: Iterable[str],
) -> list[SubtitleMatch]:
    """Pair every subtitle with the video whose base name is identical."""
    by_base: dict[str, str] = {}
    for video in video_names:
        by_base.setdefault(subtitle_base_name(video), video)

    matches: list[SubtitleMatch] = []
    for subtitle in subtitle_names:
        video = by_base.get(subtitle_base_name(subtitle))
        if video is None:
            continue
        matches.append(
            SubtitleMatch(
                video_name=video,
                subtitle_name=subtitle,
                language=parse_subtitle_language(subtitle),
            )
        )
    return matches


__all__ = [
    "SUBTITLE_EXTENSIONS",
    "SubtitleLanguage",
    "SubtitleMatch",
    "assign_episode_numbers",
    "extract_episode_number",
    "is_subtitle_file",
    "pair_subtitles",
    "parse_subtitle_language",
    "subtitle_base_name",
]
