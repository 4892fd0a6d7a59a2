"""Redrives files that were left in ``loading/`` by an interrupted transfer.

A file that has sat in ``loading/`` longer than ``stuck_threshold`` seconds
is announced again and moved to ``loaded/`` under its extension-less name.
The reconciler never sends a file back to ``new/``: it is the last line of
defence, and returning the file would risk reprocessing it forever. When the
publish fails the file is left where it is for the next sweep.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from courier.schemas.transfer import (
    LoaderSettings,
    NotificationEvent,
    TransferOutcome,
    TransferRecord,
)
from courier.transfer.audit import TransferAuditLog
from courier.transfer.errors import MoveFailure
from courier.transfer.layout import DirectoryLayout, is_temporary_name, split_name, unique_path
from courier.transfer.mover import FileMover
from courier.transfer.notifier import NotificationPublisher

logger = logging.getLogger(__name__)


class StuckFileReconciler:
    """Sweeps ``loading/`` directories for abandoned files.

    Safe to run any number of times: only files past the threshold are
    touched, and a file that has already moved on is simply not listed.
    """

    def __init__(
        self,
        settings: LoaderSettings,
        notifier: NotificationPublisher,
        *,
        mover: FileMover | None = None,
        audit_log: TransferAuditLog | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._notifier = notifier
        self._mover = mover or FileMover(
            attempts=settings.retry_attempts, delay=settings.retry_delay
        )
        self._audit_log = audit_log
        self._clock = clock

    async def reconcile_all(self) -> list[TransferRecord]:
        """Sweep every configured base directory concurrently."""
        directories = list(self._settings.source_directories)
        results = await asyncio.gather(
            *(self.reconcile_directory(directory) for directory in directories),
            return_exceptions=True,
        )
        records: list[TransferRecord] = []
        for directory, result in zip(directories, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Error cleaning loading directory: %s",
                    directory,
                    exc_info=(type(result), result, result.__traceback__),
                )
                continue
            records.extend(result)
        return records

    async def reconcile_directory(self, base_directory: str | Path) -> list[TransferRecord]:
        """Publish and finalise every stuck file in one base directory."""
        layout = DirectoryLayout.for_base(base_directory, self._settings)
        if not layout.loading_dir.is_dir():
            logger.debug("Loading dir does not exist: %s", layout.loading_dir)
            return []

        cutoff = self._clock() - self._settings.stuck_threshold
        stuck = [
            path for path in sorted(layout.loading_dir.iterdir()) if self._is_stuck(path, cutoff)
        ]

        records: list[TransferRecord] = []
        for path in stuck:
            try:
                record = await self._redrive(path, layout)
            except Exception:
                logger.exception(
                    "Unexpected error reconciling %s (base directory %s)",
                    path,
                    base_directory,
                )
                continue
            if record is not None:
                records.append(record)
        return records

    def _is_stuck(self, path: Path, cutoff: float) -> bool:
        if is_temporary_name(path.name):
            return False
        try:
            if not path.is_file():
                return False
            return path.stat().st_mtime < cutoff
        except OSError:
            logger.warning("Cannot read file last modified time: %s", path)
            return False

    async def _redrive(self, path: Path, layout: DirectoryLayout) -> TransferRecord | None:
        # Another worker may have finished it since the listing
        if not path.is_file():
            return None
        base = str(layout.base)
        size = path.stat().st_size

        logger.warning(
            "The file %s was not processed normally. Resending the notification.", path
        )
        stem, _extension = split_name(path.name)
        layout.loaded_dir.mkdir(parents=True, exist_ok=True)
        final_path = unique_path(layout.loaded_dir, stem)
        event = NotificationEvent(
            original_path=str(path),
            final_path=str(final_path),
            base_directory=base,
            timestamp=datetime.fromtimestamp(self._clock(), UTC),
            final_name=final_path.name,
        )
        if not await self._notifier.publish(event):
            logger.warning("Could not resend notification for %s; will retry next sweep", path)
            return self._record(
                path,
                base,
                TransferOutcome.PENDING,
                size=size,
                error_message="Notification was not accepted",
            )

        try:
            await self._mover.move(path, final_path)
        except MoveFailure as exc:
            logger.error("Notification resent but %s could not be moved: %s", path, exc)
            return self._record(path, base, TransferOutcome.PENDING, size=size, error_message=str(exc))

        logger.info("A file notification resent successfully: %s", final_path)
        return self._record(path, base, TransferOutcome.RECOVERED, size=size, final_path=final_path)

    def _record(
        self,
        source: Path,
        base: str,
        outcome: TransferOutcome,
        *,
        size: int,
        final_path: Path | None = None,
        error_message: str = "",
    ) -> TransferRecord:
        record = TransferRecord(
            timestamp=datetime.fromtimestamp(self._clock(), UTC),
            base_directory=base,
            source_path=str(source),
            file_name=source.name,
            outcome=outcome,
            final_path=str(final_path) if final_path else "",
            error_message=error_message,
            file_size_bytes=size,
        )
        if self._audit_log is not None:
            self._audit_log.log(record)
        return record
