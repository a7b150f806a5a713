"""Locate a configured folder reference inside the remote account tree."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

from ..exceptions import NotFoundError, ResolutionError
from ..remote.remote_models import RemoteEntry, RemoteSession
from ..utils.slug_path import normalize_name

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 8


class FolderLister(Protocol):
    async def list_folder(self, session: RemoteSession, slug: str) -> list[RemoteEntry]: ...

    async def get_root_folder_slug(self, session: RemoteSession) -> str: ...


@dataclass(slots=True)
class FolderListingCache:
    """Per-section memo of ``slug -> children``.

    A folder is fetched from the remote host at most once for the lifetime
    of the cache; slugs that answered ``NotFoundError`` are remembered too.
    """

    client: FolderLister
    session: RemoteSession
    _entries: dict[str, list[RemoteEntry]] = field(default_factory=dict)
    _missing: set[str] = field(default_factory=set)
    fetch_count: int = 0
    _root_slug: str | None = None

    async def children(self, slug: str) -> list[RemoteEntry]:
        cached = self._entries.get(slug)
        if cached is not None:
            logger.debug("resolver.cache.hit", extra={"slug": slug})
            return cached
        if slug in self._missing:
            raise NotFoundError(f"Folder '{slug}' not found on remote host")
        self.fetch_count += 1
        try:
            entries = await self.client.list_folder(self.session, slug)
        except NotFoundError:
            self._missing.add(slug)
            raise
        self._entries[slug] = entries
        return entries

    async def root_slug(self) -> str:
        if self._root_slug is None:
            self._root_slug = await self.client.get_root_folder_slug(self.session)
        return self._root_slug

    def clear(self) -> None:
        self._entries.clear()
        self._missing.clear()
        self._root_slug = None


@dataclass(frozen=True, slots=True)
class ResolvedFolder:
    slug: str
    path_segments: list[str]
    strategy: str


def _matches(entry: RemoteEntry, target: str) -> bool:
    if entry.slug == target or entry.slug.lower() == target.lower():
        return True
    normalized_target = normalize_name(target)
    return bool(normalized_target) and normalize_name(entry.name) == normalized_target


def find_folder_match(entries: list[RemoteEntry], target: str) -> RemoteEntry | None:
    for entry in entries:
        if entry.is_folder and _matches(entry, target):
            return entry
    return None


class FolderResolver:
    """Resolve a slug, ``a/b/c`` path or bare folder name to a remote folder.

    Strategies are tried in order and the first success wins: direct slug
    lookup, segment-by-segment path walk from the account root, then a
    breadth-first search by name bounded by ``max_depth``.
    """

    def __init__(self, cache: FolderListingCache, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._cache = cache
        self._max_depth = max(1, max_depth)

    async def resolve(self, reference: str) -> ResolvedFolder:
        target = reference.strip().strip("/")
        if not target:
            raise ResolutionError(reference, "Empty folder reference")

        segments = [segment.strip() for segment in target.split("/") if segment.strip()]

        if len(segments) == 1:
            direct = await self._direct_lookup(target)
            if direct is not None:
                return direct

        root_slug = await self._cache.root_slug()

        if len(segments) > 1:
            walked = await self._walk_segments(root_slug, segments)
            if walked is None:
                raise ResolutionError(
                    reference,
                    f"Unable to locate folder path '{reference}' within the remote account",
                )
            return walked

        found = await self._breadth_first(root_slug, segments[0])
        if found is None:
            raise ResolutionError(reference)
        return found

    async def _direct_lookup(self, candidate: str) -> ResolvedFolder | None:
        try:
            await self._cache.children(candidate)
        except NotFoundError:
            logger.info("resolver.direct.miss", extra={"reference": candidate})
            return None
        return ResolvedFolder(slug=candidate, path_segments=[], strategy="direct")

    async def _walk_segments(self, root_slug: str, segments: list[str]) -> ResolvedFolder | None:
        current = root_slug
        names: list[str] = []
        for segment in segments:
            try:
                entries = await self._cache.children(current)
            except NotFoundError:
                return None
            match = find_folder_match(entries, segment)
            if match is None:
                logger.info("resolver.path.segment_missing", extra={"segment": segment})
                return None
            names.append(match.name or match.slug)
            current = match.slug
        return ResolvedFolder(slug=current, path_segments=names, strategy="path")

    async def _breadth_first(self, root_slug: str, target: str) -> ResolvedFolder | None:
        # depth = number of path segments from the root to a folder
        queue: deque[tuple[str, list[str], int]] = deque([(root_slug, [], 0)])
        visited: set[str] = set()

        while queue:
            slug, path, depth = queue.popleft()
            if slug in visited:
                continue
            visited.add(slug)

            try:
                entries = await self._cache.children(slug)
            except NotFoundError:
                continue

            for entry in entries:
                if not entry.is_folder:
                    continue
                child_path = [*path, entry.name or entry.slug]
                if _matches(entry, target):
                    return ResolvedFolder(slug=entry.slug, path_segments=child_path, strategy="search")
                if depth + 1 < self._max_depth and entry.slug not in visited:
                    queue.append((entry.slug, child_path, depth + 1))
        return None


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "FolderListingCache",
    "FolderResolver",
    "ResolvedFolder",
    "find_folder_match",
]
