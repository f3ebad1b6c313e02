"""Atomic-with-fallback file moves.

Hey future me - os.rename() is atomic and instant, but ONLY within one filesystem. Library
roots are often a different mount than the data dir (Docker volumes, NAS shares), and then
rename() fails with EXDEV. The fallback copies first and only deletes the source once the
copy is complete, so a failure at any point leaves exactly one intact copy of the file:

    rename ok          -> file at dest
    EXDEV, copy ok     -> file at dest, source unlinked
    EXDEV, copy fails  -> partial dest removed, source untouched, StorageError raised
"""

import asyncio
import contextlib
import errno
import logging
import os
import shutil
from pathlib import Path

from cadenza.domain.exceptions import StorageError
from cadenza.infrastructure.observability.error_formatting import format_oserror_message

logger = logging.getLogger(__name__)


def robust_move(source: Path, destination: Path) -> None:
    """Move a file, falling back to copy+delete across filesystems.

    The caller is responsible for the collision check; the destination's parent
    directory must exist.

    Raises:
        StorageError: If the file could not be moved (source is left in place)
    """
    try:
        os.rename(source, destination)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            msg = format_oserror_message(
                e, "move file", source, {"destination": str(destination)}
            )
            raise StorageError(msg) from e
        logger.info(
            "Cross-filesystem move detected, using copy+delete fallback: %s -> %s",
            source,
            destination,
        )

    try:
        shutil.copy2(source, destination)
    except OSError as e:
        with contextlib.suppress(OSError):
            destination.unlink(missing_ok=True)
        msg = format_oserror_message(
            e, "copy file", source, {"destination": str(destination)}
        )
        raise StorageError(msg) from e

    try:
        source.unlink()
    except OSError as e:
        # Don't leave two copies behind - roll the copy back
        with contextlib.suppress(OSError):
            destination.unlink(missing_ok=True)
        msg = format_oserror_message(e, "remove source after copy", source)
        raise StorageError(msg) from e


async def move_file(source: Path, destination: Path) -> None:
    """Async wrapper around robust_move (runs in a worker thread)."""
    await asyncio.to_thread(robust_move, source, destination)
