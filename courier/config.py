"""Single source of truth for all configuration.

All modules import from here, never from os.environ directly.

Values come from the process environment, layered over an optional ``.env``
file at the project root (or the path in ``COURIER_ENV_FILE``).
"""

import os
from pathlib import Path

from dotenv import dotenv_values

from courier.schemas.transfer import LoaderSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _load() -> dict[str, str | None]:
    """Merge the .env file (if any) with the environment; the environment wins."""
    env_file = Path(os.environ.get("COURIER_ENV_FILE", PROJECT_ROOT / ".env"))
    values: dict[str, str | None] = {}
    if env_file.is_file():
        values.update(dotenv_values(env_file))
    values.update({k: v for k, v in os.environ.items() if k.startswith("COURIER_")})
    return values


def parse_source_directories(raw: str) -> dict[str, str]:
    """Parse ``dir=channel,dir=channel`` into a mapping.

    Raises:
        ValueError: If an entry has no ``=`` or an empty side.
    """
    mapping: dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        directory, sep, channel = entry.rpartition("=")
        if not sep or not directory.strip() or not channel.strip():
            raise ValueError(f"Invalid source directory entry (expected dir=channel): {entry!r}")
        mapping[directory.strip()] = channel.strip()
    return mapping


_values = _load()


def _get(key: str, default: str) -> str:
    value = _values.get(key)
    return default if value is None else value


# --- Directories and channels ---
SOURCE_DIRECTORIES: str = _get("COURIER_SOURCE_DIRECTORIES", "")
NEW_SUBDIR: str = _get("COURIER_NEW_SUBDIR", "new")
LOADING_SUBDIR: str = _get("COURIER_LOADING_SUBDIR", "loading")
LOADED_SUBDIR: str = _get("COURIER_LOADED_SUBDIR", "loaded")
ERROR_CHANNEL: str = _get("COURIER_ERROR_CHANNEL", "")

# --- Scheduling (seconds) ---
POLLING_INTERVAL: float = float(_get("COURIER_POLLING_INTERVAL", "3"))
CLEANING_INTERVAL: float = float(_get("COURIER_CLEANING_INTERVAL", "300"))
BATCH_SIZE: int = int(_get("COURIER_BATCH_SIZE", "100"))

# --- File operations ---
RETRY_ATTEMPTS: int = int(_get("COURIER_RETRY_ATTEMPTS", "3"))
RETRY_DELAY: float = float(_get("COURIER_RETRY_DELAY", "2"))
STABILITY_DELAY: float = float(_get("COURIER_STABILITY_DELAY", "1"))
STUCK_THRESHOLD: float = float(_get("COURIER_STUCK_THRESHOLD", "60"))

# --- Publisher ---
PUBLISHER: str = _get("COURIER_PUBLISHER", "jsonl")
OUTBOX_DIR: str = _get("COURIER_OUTBOX_DIR", str(PROJECT_ROOT / "data" / "outbox"))
PUBLISHER_URL: str = _get("COURIER_PUBLISHER_URL", "")
PUBLISHER_TOKEN: str = _get("COURIER_PUBLISHER_TOKEN", "")

# --- Audit ---
AUDIT_LOG_PATH: str = _get(
    "COURIER_AUDIT_LOG_PATH", str(PROJECT_ROOT / "data" / "transfer_audit.jsonl")
)


def load_settings(source_directories: str | None = None) -> LoaderSettings:
    """Build validated LoaderSettings from the loaded configuration.

    Args:
        source_directories: Override for ``COURIER_SOURCE_DIRECTORIES``.
    """
    raw = SOURCE_DIRECTORIES if source_directories is None else source_directories
    return LoaderSettings(
        source_directories=parse_source_directories(raw),
        new_subdirectory=NEW_SUBDIR,
        loading_subdirectory=LOADING_SUBDIR,
        loaded_subdirectory=LOADED_SUBDIR,
        polling_interval=POLLING_INTERVAL,
        cleaning_interval=CLEANING_INTERVAL,
        batch_size=BATCH_SIZE,
        retry_attempts=RETRY_ATTEMPTS,
        retry_delay=RETRY_DELAY,
        stability_delay=STABILITY_DELAY,
        stuck_threshold=STUCK_THRESHOLD,
        error_channel=ERROR_CHANNEL,
    )
