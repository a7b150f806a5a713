"""Which remote folder feeds which library section.

Sections come from exactly one source per invocation: repeated
``--section/--folder[/--name]`` command line groups, or
``LIBRARY_<SECTION>_FOLDER`` (+ ``LIBRARY_<SECTION>_NAME``) environment
variables when no command line group was given.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..catalog.catalog_models import LibrarySection
from ..exceptions import ValidationError

ENV_PREFIX = "LIBRARY_"
ENV_FOLDER_SUFFIX = "_FOLDER"
ENV_NAME_SUFFIX = "_NAME"


@dataclass(frozen=True, slots=True)
class SectionConfig:
    section: LibrarySection
    folder_reference: str
    display_name: str | None = None


def _parse_section(raw: str) -> LibrarySection:
    try:
        return LibrarySection.parse(raw)
    except ValueError:
        allowed = ", ".join(section.value for section in LibrarySection)
        raise ValidationError(f"Unknown library section '{raw}' (expected one of: {allowed})") from None


def _build(section_raw: str, folder: str, name: str | None) -> SectionConfig:
    section = _parse_section(section_raw)
    reference = (folder or "").strip()
    if not reference:
        raise ValidationError(f"Section '{section.value}' has an empty folder reference")
    display_name = name.strip() if name and name.strip() else None
    return SectionConfig(section=section, folder_reference=reference, display_name=display_name)


def _ensure_unique(configs: list[SectionConfig]) -> list[SectionConfig]:
    seen: set[LibrarySection] = set()
    for config in configs:
        if config.section in seen:
            raise ValidationError(f"Section '{config.section.value}' is configured more than once")
        seen.add(config.section)
    return configs


def sections_from_cli(
    sections: Sequence[str] | None,
    folders: Sequence[str] | None,
    names: Sequence[str] | None = None,
) -> list[SectionConfig]:
    sections = list(sections or [])
    folders = list(folders or [])
    names = list(names or [])
    if len(sections) != len(folders):
        raise ValidationError(
            f"Got {len(sections)} --section and {len(folders)} --folder arguments; counts must match"
        )
    if names and len(names) != len(sections):
        raise ValidationError("--name must be omitted or given once per --section")

    configs = [
        _build(section, folder, names[index] if names else None)
        for index, (section, folder) in enumerate(zip(sections, folders))
    ]
    return _ensure_unique(configs)


def sections_from_env(environ: Mapping[str, str]) -> list[SectionConfig]:
    configs: list[SectionConfig] = []
    for section in LibrarySection:
        key = f"{ENV_PREFIX}{section.value.upper()}"
        folder = environ.get(f"{key}{ENV_FOLDER_SUFFIX}")
        if folder is None:
            continue
        configs.append(_build(section.value, folder, environ.get(f"{key}{ENV_NAME_SUFFIX}")))
    return configs


def resolve_sections(
    *,
    cli_sections: Sequence[str] | None,
    cli_folders: Sequence[str] | None,
    cli_names: Sequence[str] | None,
    environ: Mapping[str, str],
) -> list[SectionConfig]:
    """Return the configured sections, preferring the command line source."""
    if cli_sections or cli_folders or cli_names:
        configs = sections_from_cli(cli_sections, cli_folders, cli_names)
    else:
        configs = sections_from_env(environ)
    if not configs:
        raise ValidationError(
            "No library sections configured; pass --section/--folder or set LIBRARY_<SECTION>_FOLDER"
        )
    return configs


__all__ = [
    "SectionConfig",
    "resolve_sections",
    "sections_from_cli",
    "sections_from_env",
]
