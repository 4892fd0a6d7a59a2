"""Atomic file moves with a copy fallback and bounded retry.

``os.replace`` is tried first. Volumes that cannot rename across the source
and target (cross-device, some network and object-store mounts) fall back to
copy-then-delete. The copy lands in a temporary sibling and is renamed into
place, so the target is never half-written, but a crash before the source is
deleted leaves the file in both locations. Once the copy has been renamed into
place the target is authoritative.
"""

import asyncio
import errno
import logging
import os
import shutil
from pathlib import Path

from courier.transfer.errors import MoveExhausted, MoveFailure

logger = logging.getLogger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2.0

# rename() failures that mean "this filesystem cannot do it", not "try again"
_NO_ATOMIC_RENAME = frozenset({errno.EXDEV, errno.ENOTSUP, errno.EOPNOTSUPP})

TRANSIENT_ERRNOS = frozenset(
    {errno.EBUSY, errno.EIO, errno.EAGAIN, errno.ETIMEDOUT, errno.EINTR, errno.ETXTBSY}
)


def is_transient(exc: OSError) -> bool:
    """Return True for I/O errors worth retrying (busy, I/O error, timeouts)."""
    if isinstance(exc, FileNotFoundError):
        return False
    return exc.errno is None or exc.errno in TRANSIENT_ERRNOS


def _copy_then_delete(source: Path, target: Path) -> None:
    tmp = target.with_name(f".{target.name}.tmp")
    try:
        shutil.copy2(source, tmp)
        os.replace(tmp, target)
    except BaseException:
        # temp names are invisible to every scan, so nothing else would clear it
        tmp.unlink(missing_ok=True)
        raise
    try:
        source.unlink()
    except FileNotFoundError:
        pass


def move_file(source: Path, target: Path) -> Path:
    """Move ``source`` to ``target`` once, overwriting any existing target."""
    if not source.exists():
        raise FileNotFoundError(errno.ENOENT, "No such file", str(source))
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.replace(source, target)
    except OSError as exc:
        if exc.errno not in _NO_ATOMIC_RENAME:
            raise
        logger.debug("Atomic move not supported, falling back to copy+delete for: %s", source)
        _copy_then_delete(source, target)
    return target


class FileMover:
    """Runs :func:`move_file` under a fixed-delay retry policy.

    Usage::

        mover = FileMover(attempts=3, delay=2.0)
        await mover.move(Path("/in/new/a.csv"), Path("/in/loading/a.csv"))
    """

    def __init__(
        self,
        *,
        attempts: int = DEFAULT_RETRY_ATTEMPTS,
        delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self._attempts = attempts
        self._delay = delay

    async def move(self, source: str | Path, target: str | Path) -> Path:
        """Move a file, retrying transient I/O errors.

        Returns:
            The target path.

        Raises:
            MoveFailure: On a permanent error such as a missing source.
            MoveExhausted: If every attempt failed with a transient error.
        """
        source = Path(source)
        target = Path(target)
        for attempt in range(1, self._attempts + 1):
            try:
                return move_file(source, target)
            except OSError as exc:
                if not is_transient(exc):
                    raise MoveFailure(source, target, str(exc)) from exc
                if attempt == self._attempts:
                    logger.error(
                        "Failed to move %s after %d attempts: %s",
                        source,
                        self._attempts,
                        exc,
                    )
                    raise MoveExhausted(source, target, self._attempts, exc) from exc
                logger.warning(
                    "Move of %s failed (attempt %d/%d), retrying: %s",
                    source,
                    attempt,
                    self._attempts,
                    exc,
                )
                await asyncio.sleep(self._delay)
