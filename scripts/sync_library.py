"""Cron entry point mirroring remote library folders into the catalog."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Mapping

from src.librarysync.config import AppConfig, load_config
from src.librarysync.exceptions import AuthError, ValidationError
from src.librarysync.logging import configure_logging
from src.librarysync.media.media_downloader import MediaDownloader
from src.librarysync.media.object_storage import build_storage
from src.librarysync.remote.remote_client import RemoteClient
from src.librarysync.repositories.catalog_repository import CatalogRepository
from src.librarysync.sync.orchestrator import LibrarySync, RunReport
from src.librarysync.sync.section_config import SectionConfig, resolve_sections
from src.librarysync.workers.mirror_queue import MirrorQueue


async def perform_sync(
    config: AppConfig,
    sections: list[SectionConfig],
    *,
    concurrency: int | None = None,
    max_depth: int | None = None,
    mark_missing: bool = False,
) -> RunReport:
    """Run every configured section and return the aggregated report."""
    settings = config.settings
    catalog = CatalogRepository(config.session_factory)
    downloader = MediaDownloader(timeout_seconds=settings.mirror_timeout_seconds)
    queue = MirrorQueue(
        storage=build_storage(settings),
        catalog=catalog,
        downloader=downloader,
        max_attempts=settings.mirror_max_attempts,
        backoff_seconds=settings.mirror_backoff_seconds,
    )
    client = RemoteClient(
        base_url=settings.remote_base_url,
        username=settings.remote_username,
        password=settings.remote_password,
        app_token=settings.remote_app_token,
        timeout_seconds=settings.remote_timeout_seconds,
        max_retries=settings.remote_max_retries,
        retry_base_delay=settings.remote_retry_base_delay,
    )
    sync = LibrarySync(
        client=client,
        catalog=catalog,
        mirror_queue=queue,
        resolver_max_depth=max_depth or settings.resolver_max_depth,
        walk_max_depth=settings.walk_max_depth,
        file_detail_delay=settings.file_detail_delay_seconds,
        mirror_concurrency=concurrency or settings.mirror_concurrency,
        mark_missing=mark_missing,
    )
    try:
        return await sync.run(sections)
    finally:
        await client.aclose()
        await downloader.aclose()


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mirror remote library folders into the local catalog.",
        allow_abbrev=False,
    )
    parser.add_argument("--section", action="append", dest="sections", help="Library section to sync.")
    parser.add_argument(
        "--folder", action="append", dest="folders", help="Remote folder slug, path or name for the section."
    )
    parser.add_argument("--name", action="append", dest="names", help="Display name for the section root.")
    parser.add_argument("--concurrency", type=int, default=None, help="Parallel preview uploads.")
    parser.add_argument("--max-depth", type=int, default=None, help="Folder search depth for name lookups.")
    parser.add_argument(
        "--mark-missing",
        action="store_true",
        help="Flag catalog entries no longer present remotely as unavailable.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    configure_logging(args.log_level.upper())

    try:
        sections = resolve_sections(
            cli_sections=args.sections,
            cli_folders=args.folders,
            cli_names=args.names,
            environ=os.environ if environ is None else environ,
        )
    except ValidationError as exc:
        print(f"invalid section configuration: {exc}", file=sys.stderr)
        return 2

    config = load_config()
    try:
        report = asyncio.run(
            perform_sync(
                config,
                sections,
                concurrency=args.concurrency,
                max_depth=args.max_depth,
                mark_missing=args.mark_missing,
            )
        )
    except AuthError as exc:
        print(f"sync aborted, remote login failed: {exc}", file=sys.stderr)
        return 1

    print(report.render_summary(), file=sys.stdout)
    return report.exit_code()


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
