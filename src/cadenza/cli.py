"""Operator command line for the library core.

    cadenza scan [PATH]            scan PATH (default: CADENZA_STORAGE__MUSIC_PATH)
    cadenza organize [PATH]        move files into the canonical layout
    cadenza sync-artists [--missing-only]
    cadenza sync-albums
    cadenza status
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from cadenza import __version__
from cadenza.config import get_settings
from cadenza.domain.exceptions import DomainException
from cadenza.infrastructure.lifecycle import LibraryCore, library_core

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with one subcommand per core operation."""
    parser = argparse.ArgumentParser(
        prog="cadenza",
        description="Scan, organize and enrich a self-hosted music library",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Scan a library tree into the catalog")
    scan_parser.add_argument("path", nargs="?", type=Path, help="Library root")

    organize_parser = subparsers.add_parser(
        "organize", help="Move files into Artist/Album/Title layout"
    )
    organize_parser.add_argument("path", nargs="?", type=Path, help="Library root")

    artists_parser = subparsers.add_parser(
        "sync-artists", help="Fetch MusicBrainz ids and images for artists"
    )
    artists_parser.add_argument(
        "--missing-only",
        action="store_true",
        help="Only artists that have no image yet",
    )

    subparsers.add_parser("sync-albums", help="Fetch release data and covers for albums")
    subparsers.add_parser("status", help="Show scan and sync status")
    return parser


async def _run_command(core: LibraryCore, args: argparse.Namespace) -> int:
    music_path = core.settings.storage.music_path

    if args.command == "scan":
        scan = await core.scanner.scan(args.path or music_path)
        print(
            f"Scanned {scan.total_files} files: {scan.processed} processed, "
            f"{scan.failed} failed, {scan.orphans_removed} orphans removed "
            f"({scan.duration_seconds:.1f}s)"
        )
        if scan.aborted:
            print("Scan stopped early after too many failures")
            return 1
        return 0

    if args.command == "organize":
        organized = await core.organizer.organize(args.path or music_path)
        print(
            f"Organized {organized.total_files} files: {organized.moved} moved, "
            f"{organized.unchanged} already in place, {organized.failed} failed, "
            f"{organized.assets_recovered} assets recovered, "
            f"{organized.lyrics_relocated} lyric files relocated"
        )
        for collision in organized.collisions:
            print(f"  skipped {collision.source} (exists: {collision.destination})")
        return 0

    if args.command == "sync-artists":
        batch = await core.metadata_sync.sync_all_artists(missing_only=args.missing_only)
    elif args.command == "sync-albums":
        batch = await core.metadata_sync.sync_all_albums()
    else:
        scan_status = await core.status_store.get_scan_status()
        sync_status = await core.status_store.get_artist_sync_status()
        print(
            f"Scan: {'running' if scan_status.is_running else 'idle'} "
            f"{scan_status.current}/{scan_status.total} "
            f"(last run: {scan_status.last_run_at or 'never'})"
        )
        print(
            f"Sync: {'running' if sync_status.is_running else 'idle'} "
            f"{sync_status.current}/{sync_status.total} "
            f"(last run: {sync_status.last_run_at or 'never'})"
        )
        if sync_status.last_error:
            print(f"Last sync error: {sync_status.last_error}")
        return 0

    print(f"Synced {batch.total} items: {batch.succeeded} ok, {batch.failed} failed")
    if batch.last_error:
        print(f"Last error: {batch.last_error}")
    return 0


async def _main(args: argparse.Namespace) -> int:
    async with library_core(get_settings()) as core:
        return await _run_command(core, args)


def main(argv: Sequence[str] | None = None) -> int:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(_main(args))
    except DomainException as e:
        logger.error("%s", e.message)
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
