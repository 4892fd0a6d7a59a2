"""Stable-file scanner for the ``new/`` directory.

The stability check samples the file size twice, ``stability_delay`` seconds
apart, and accepts the file only if both samples match and are non-zero. This
is a heuristic: a producer that pauses for exactly the sampling window is not
detected.
"""

import asyncio
import logging
from pathlib import Path

from courier.transfer.errors import DirectoryUnavailable
from courier.transfer.layout import is_temporary_name

logger = logging.getLogger(__name__)


def _size(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except OSError:
        return None


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


async def is_file_stable(path: Path, delay: float) -> bool:
    """Return True if the file size is positive and unchanged across ``delay``."""
    first = _size(path)
    if not first:
        logger.debug("Not stable (empty or missing): %s", path)
        return False
    await asyncio.sleep(delay)
    second = _size(path)
    if second != first:
        logger.debug("Not stable (size %s -> %s): %s", first, second, path)
        return False
    return True


async def scan(
    directory: str | Path,
    *,
    stability_delay: float = 1.0,
    limit: int | None = None,
) -> list[Path]:
    """List candidate files in a directory, oldest first.

    Filters, in order: regular files only, no temporary names, stable size.
    With ``limit``, stops once that many stable files have been found, so
    the settle delay is paid at most ``limit`` times for accepted files.

    Raises:
        DirectoryUnavailable: If the directory does not exist.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise DirectoryUnavailable(directory)

    files: list[Path] = []
    for item in sorted(directory.iterdir()):
        if not item.is_file():
            continue
        if is_temporary_name(item.name):
            logger.debug("Skipping temporary file: %s", item.name)
            continue
        files.append(item)

    # sorted() is stable, so files with equal mtimes stay in name order
    candidates: list[Path] = []
    for item in sorted(files, key=_mtime):
        if limit is not None and len(candidates) >= limit:
            break
        if await is_file_stable(item, stability_delay):
            candidates.append(item)
    return candidates
