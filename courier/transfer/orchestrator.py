"""Drives files from ``new/`` through ``loading/`` to ``loaded/``.

Per file (``process_one``)::

    new/<name> --move--> loading/<name> --publish--> ok?  --move--> loaded/<stamped name>
                                                    fail? --move--> new/<name>

The notification always goes out before the final move, so a delivered file
was announced under its exact final path. When the return move fails too,
the file stays in ``loading/`` and the reconciler takes over; nothing here
loops on failure.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from courier.schemas.transfer import (
    ErrorType,
    LoaderSettings,
    NotificationEvent,
    TransferErrorEvent,
    TransferOutcome,
    TransferRecord,
)
from courier.transfer.audit import TransferAuditLog
from courier.transfer.errors import DirectoryUnavailable, MoveExhausted, MoveFailure
from courier.transfer.layout import DirectoryLayout, timestamped_name, unique_path
from courier.transfer.mover import FileMover
from courier.transfer.notifier import NotificationPublisher
from courier.transfer.scanner import scan

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def build_file_metadata(path: Path) -> dict:
    """Size and modification time of a file, for the notification metadata."""
    try:
        stat = path.stat()
    except OSError:
        logger.debug("Could not read file attributes for %s", path)
        return {}
    return {
        "originalSize": stat.st_size,
        "originalLastModified": datetime.fromtimestamp(stat.st_mtime, UTC).isoformat(),
    }


def add_target_metadata(metadata: dict, target: Path, processed_at: datetime) -> dict:
    """Add ``processedSize`` and ``processedAt`` once the file sits at ``target``."""
    try:
        size = target.stat().st_size
    except OSError:
        logger.debug("Could not read target file attributes for %s", target)
        return metadata
    return {**metadata, "processedSize": size, "processedAt": processed_at.isoformat()}


class TransferOrchestrator:
    """Moves newly discovered files through the transfer state machine.

    Usage::

        orchestrator = TransferOrchestrator(settings, notifier)
        records = await orchestrator.process_new_files()
    """

    def __init__(
        self,
        settings: LoaderSettings,
        notifier: NotificationPublisher,
        *,
        mover: FileMover | None = None,
        audit_log: TransferAuditLog | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._notifier = notifier
        self._mover = mover or FileMover(
            attempts=settings.retry_attempts, delay=settings.retry_delay
        )
        self._audit_log = audit_log
        self._clock = clock

    def layout(self, base_directory: str | Path) -> DirectoryLayout:
        return DirectoryLayout.for_base(base_directory, self._settings)

    # ------------------------------------------------------------------
    # Batch entry points
    # ------------------------------------------------------------------

    async def process_new_files(self) -> list[TransferRecord]:
        """Process every configured base directory concurrently.

        A directory that fails is logged and contributes no records.
        """
        directories = list(self._settings.source_directories)
        results = await asyncio.gather(
            *(self.process_directory(directory) for directory in directories),
            return_exceptions=True,
        )
        records: list[TransferRecord] = []
        for directory, result in zip(directories, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Error processing directory: %s",
                    directory,
                    exc_info=(type(result), result, result.__traceback__),
                )
                continue
            records.extend(result)
        return records

    async def process_directory(self, base_directory: str | Path) -> list[TransferRecord]:
        """Process up to ``batch_size`` stable files from one ``new/`` directory, in order."""
        layout = self.layout(base_directory)
        try:
            candidates = await scan(
                layout.new_dir,
                stability_delay=self._settings.stability_delay,
                limit=self._settings.batch_size,
            )
        except DirectoryUnavailable:
            logger.debug("New files directory does not exist: %s", layout.new_dir)
            return []

        if candidates:
            logger.info("Found %d file(s) in %s", len(candidates), layout.new_dir)

        records: list[TransferRecord] = []
        for candidate in candidates:
            try:
                records.append(await self.process_one(candidate, base_directory))
            except Exception:
                logger.exception(
                    "Unexpected error processing %s (base directory %s)",
                    candidate,
                    base_directory,
                )
        return records

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    async def process_one(
        self, candidate: str | Path, base_directory: str | Path
    ) -> TransferRecord:
        """Run one file through new -> loading -> loaded (or back to new).

        Returns:
            The TransferRecord describing where the file ended up.
        """
        candidate = Path(candidate)
        layout = self.layout(base_directory)
        base = str(layout.base)
        metadata = build_file_metadata(candidate)
        size = metadata.get("originalSize", 0)

        if self._notifier.resolve_channel(base) is None:
            message = f"No channel configured for directory: {base}"
            logger.error("%s; leaving %s in place", message, candidate)
            await self._report(candidate, base, message, ErrorType.CONFIGURATION)
            return self._record(
                candidate, base, TransferOutcome.SKIPPED, error_message=message, size=size
            )

        # DISCOVERED -> IN_FLIGHT
        intermediate = layout.loading_dir / candidate.name
        if intermediate.exists():
            message = f"In-flight slot already occupied: {intermediate}"
            logger.warning("%s; leaving %s for the next cycle", message, candidate)
            return self._record(
                candidate, base, TransferOutcome.SKIPPED, error_message=message, size=size
            )
        try:
            await self._mover.move(candidate, intermediate)
        except MoveFailure as exc:
            logger.error("Could not move %s into %s: %s", candidate, layout.loading_dir, exc)
            await self._report(candidate, base, str(exc), _error_type(exc))
            return self._record(
                candidate, base, TransferOutcome.SKIPPED, error_message=str(exc), size=size
            )

        # IN_FLIGHT -> DELIVERED | REVERTED
        try:
            now = self._clock()
            final_path = unique_path(layout.loaded_dir, timestamped_name(candidate.name, now))
            event = NotificationEvent(
                original_path=str(candidate),
                final_path=str(final_path),
                base_directory=base,
                timestamp=now,
                final_name=final_path.name,
                metadata=add_target_metadata(metadata, intermediate, now),
            )
            published = await self._notifier.publish(event)
            error_message = "" if published else "Notification was not accepted"
        except Exception as exc:
            logger.exception("Failed to publish notification for %s (base directory %s)", candidate, base)
            published = False
            error_message = str(exc)

        if published:
            return await self._finalise(candidate, intermediate, final_path, base, size)

        await self._report(candidate, base, error_message, ErrorType.PUBLISH_FAILED)
        if await self._revert(intermediate, candidate):
            return self._record(
                candidate, base, TransferOutcome.REVERTED, error_message=error_message, size=size
            )
        return self._record(
            candidate, base, TransferOutcome.STRANDED, error_message=error_message, size=size
        )

    async def _finalise(
        self, candidate: Path, intermediate: Path, final_path: Path, base: str, size: int
    ) -> TransferRecord:
        try:
            await self._mover.move(intermediate, final_path)
        except MoveFailure as exc:
            logger.error(
                "Notification sent but %s could not be moved to %s; left for the reconciler: %s",
                intermediate,
                final_path,
                exc,
            )
            await self._report(intermediate, base, str(exc), _error_type(exc))
            return self._record(
                candidate, base, TransferOutcome.STRANDED, error_message=str(exc), size=size
            )
        logger.info("Successfully moved to: %s and sent notification", final_path)
        return self._record(
            candidate, base, TransferOutcome.DELIVERED, final_path=final_path, size=size
        )

    async def _revert(self, intermediate: Path, origin: Path) -> bool:
        """Move a file back to where it was found. Returns False if it stays in flight."""
        logger.warning("Notification failed, moving back file %s to %s", intermediate, origin.parent)
        if origin.exists():
            logger.error(
                "Cannot move %s back: %s already exists; left for the reconciler",
                intermediate,
                origin,
            )
            return False
        try:
            await self._mover.move(intermediate, origin)
        except MoveFailure as exc:
            logger.error("Failed to move back %s; left for the reconciler: %s", intermediate, exc)
            return False
        logger.info("Moved back to new directory: %s", origin)
        return True

    async def _report(
        self, path: Path, base: str, message: str, error_type: ErrorType
    ) -> None:
        await self._notifier.publish_error(
            TransferErrorEvent(
                file_path=str(path),
                base_directory=base,
                error_message=message,
                error_type=error_type,
                timestamp=self._clock(),
            )
        )

    def _record(
        self,
        source: Path,
        base: str,
        outcome: TransferOutcome,
        *,
        final_path: Path | None = None,
        error_message: str = "",
        size: int = 0,
    ) -> TransferRecord:
        record = TransferRecord(
            timestamp=self._clock(),
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


def _error_type(exc: MoveFailure) -> ErrorType:
    if isinstance(exc, MoveExhausted):
        return ErrorType.MOVE_EXHAUSTED
    return ErrorType.UNEXPECTED
