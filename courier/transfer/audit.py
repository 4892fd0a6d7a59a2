"""Append-only JSONL audit log of transfer outcomes.

One line per orchestrator or reconciler pass over a file. The log is
informational only: the directory a file sits in remains the source of truth,
so a torn trailing line (a crash mid-append) is skipped rather than fatal.
"""

import logging
from collections import Counter
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from courier.schemas.transfer import TransferOutcome, TransferRecord

logger = logging.getLogger(__name__)


class TransferAuditLog:
    """Transfer records, one JSON object per line.

    Usage::

        audit = TransferAuditLog("/var/lib/courier/transfer_audit.jsonl")
        audit.log(record)
        counts = audit.outcome_counts(base_directory="/data/inbox", since=cutoff)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, record: TransferRecord) -> None:
        with self._path.open("a") as f:
            f.write(record.model_dump_json() + "\n")
        logger.debug(
            "Audit %s: %s (%s)", record.outcome, record.file_name, record.base_directory
        )

    def _records(self) -> Iterator[TransferRecord]:
        if not self._path.exists():
            return
        with self._path.open() as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield TransferRecord.model_validate_json(line)
                except ValidationError:
                    logger.warning("Skipping unreadable audit line %d in %s", lineno, self._path)

    def read_entries(
        self,
        *,
        since: datetime | None = None,
        outcome: TransferOutcome | None = None,
        base_directory: str | Path | None = None,
        limit: int | None = None,
    ) -> list[TransferRecord]:
        """Read audit entries with optional filtering.

        Args:
            since: Only return entries after this timestamp.
            outcome: Only return entries with this outcome.
            base_directory: Only return entries for this base directory.
            limit: Maximum number of entries to return (newest after filtering).

        Returns:
            List of TransferRecord objects, oldest first.
        """
        base = str(Path(base_directory)) if base_directory is not None else None
        entries = [
            record
            for record in self._records()
            if (since is None or record.timestamp > since)
            and (outcome is None or record.outcome == outcome)
            and (base is None or record.base_directory == base)
        ]
        if limit is not None:
            entries = entries[-limit:]
        return entries

    def outcome_counts(
        self,
        *,
        since: datetime | None = None,
        base_directory: str | Path | None = None,
    ) -> Counter[TransferOutcome]:
        """Count entries per outcome, e.g. for ``courier status``."""
        return Counter(
            record.outcome
            for record in self.read_entries(since=since, base_directory=base_directory)
        )
