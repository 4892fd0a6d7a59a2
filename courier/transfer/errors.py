"""Exceptions raised by the transfer pipeline."""

from pathlib import Path


class CourierError(Exception):
    """Base class for transfer pipeline errors."""


class DirectoryUnavailable(CourierError):
    """A directory to scan does not exist."""

    def __init__(self, directory: str | Path) -> None:
        super().__init__(f"Directory does not exist: {directory}")
        self.directory = Path(directory)


class MoveFailure(CourierError):
    """A file could not be moved."""

    def __init__(self, source: str | Path, target: str | Path, message: str) -> None:
        super().__init__(f"Failed to move {source} -> {target}: {message}")
        self.source = Path(source)
        self.target = Path(target)


class MoveExhausted(MoveFailure):
    """A move kept failing with transient errors until retries ran out."""

    def __init__(self, source: str | Path, target: str | Path, attempts: int, cause: Exception) -> None:
        super().__init__(source, target, f"gave up after {attempts} attempt(s): {cause}")
        self.attempts = attempts
