"""Directory layout of a base directory and final-name helpers.

Each configured base directory holds three subdirectories whose membership
*is* the lifecycle state of a file::

    <base>/new/       DISCOVERED (and REVERTED, once returned)
    <base>/loading/   IN_FLIGHT
    <base>/loaded/    DELIVERED

There is no separate ledger. Everything here derives paths or reads listings.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from courier.schemas.transfer import LoaderSettings, TransferState

TEMP_PREFIXES = (".", "~")
TEMP_SUFFIX = ".tmp"


def is_temporary_name(name: str) -> bool:
    """Return True for hidden, editor backup, or in-progress transfer files."""
    return name.startswith(TEMP_PREFIXES) or name.endswith(TEMP_SUFFIX)


def split_name(file_name: str) -> tuple[str, str]:
    """Split a file name at its last dot into ``(stem, extension)``.

    A leading dot belongs to the stem, so ``.env`` has no extension.
    """
    index = file_name.rfind(".")
    if index <= 0:
        return file_name, ""
    return file_name[:index], file_name[index:]


def timestamped_name(file_name: str, now: datetime | None = None) -> str:
    """Return ``<stem>-<UTC timestamp><ext>`` with colons replaced by dashes.

    >>> timestamped_name("report.csv", datetime(2026, 1, 2, 3, 4, 5, 6, tzinfo=UTC))
    'report-2026-01-02T03-04-05.000006Z.csv'
    """
    now = now or datetime.now(UTC)
    stamp = now.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ").replace(":", "-")
    stem, extension = split_name(file_name)
    return f"{stem}-{stamp}{extension}"


def unique_path(directory: Path, file_name: str) -> Path:
    """Return ``directory / file_name``, adding ``_1``, ``_2``... if taken."""
    candidate = directory / file_name
    if not candidate.exists():
        return candidate
    stem, extension = split_name(file_name)
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}_{counter}{extension}"
        counter += 1
    return candidate


@dataclass(frozen=True)
class DirectoryLayout:
    """The ``new``/``loading``/``loaded`` paths of one base directory."""

    base: Path
    new_dir: Path
    loading_dir: Path
    loaded_dir: Path

    @classmethod
    def for_base(cls, base_directory: str | Path, settings: LoaderSettings) -> "DirectoryLayout":
        base = Path(base_directory)
        return cls(
            base=base,
            new_dir=base / settings.new_subdirectory,
            loading_dir=base / settings.loading_subdirectory,
            loaded_dir=base / settings.loaded_subdirectory,
        )

    def snapshot(self) -> dict[TransferState, list[Path]]:
        """List the files currently in each state, sorted by name.

        REVERTED files are indistinguishable from new arrivals and are
        reported as DISCOVERED.
        """
        return {
            TransferState.DISCOVERED: _list_files(self.new_dir),
            TransferState.IN_FLIGHT: _list_files(self.loading_dir),
            TransferState.DELIVERED: _list_files(self.loaded_dir),
        }


def _list_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        item
        for item in directory.iterdir()
        if item.is_file() and not is_temporary_name(item.name)
    )
