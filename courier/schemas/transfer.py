"""Schemas for the file transfer pipeline.

Covers loader settings, lifecycle states, the notification events handed to
publishers, and the audit records written for every transfer outcome.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TransferState(StrEnum):
    """Lifecycle state of a file, derived from the directory it sits in."""

    DISCOVERED = "discovered"
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    REVERTED = "reverted"


class TransferOutcome(StrEnum):
    """Result of one orchestrator or reconciler pass over a file."""

    DELIVERED = "delivered"
    REVERTED = "reverted"
    STRANDED = "stranded"
    SKIPPED = "skipped"
    RECOVERED = "recovered"
    PENDING = "pending"


class ErrorType(StrEnum):
    """Failure classes reported on the error channel."""

    CONFIGURATION = "CONFIGURATION"
    MOVE_EXHAUSTED = "MOVE_EXHAUSTED"
    PUBLISH_FAILED = "PUBLISH_FAILED"
    UNEXPECTED = "UNEXPECTED"


class LoaderSettings(BaseModel):
    """Runtime settings for the orchestrator and reconciler.

    Durations are in seconds.
    """

    source_directories: dict[str, str] = Field(
        default_factory=dict,
        description="Base directory -> output channel",
    )
    new_subdirectory: str = "new"
    loading_subdirectory: str = "loading"
    loaded_subdirectory: str = "loaded"
    polling_interval: float = Field(default=3.0, gt=0)
    cleaning_interval: float = Field(default=300.0, gt=0)
    batch_size: int = Field(default=100, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)
    stability_delay: float = Field(default=1.0, ge=0)
    stuck_threshold: float = Field(default=60.0, ge=0)
    error_channel: str = Field(default="", description="Blank disables error notifications")

    @field_validator("new_subdirectory", "loading_subdirectory", "loaded_subdirectory")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("subdirectory names must not be blank")
        return value


class _WireModel(BaseModel):
    """Frozen model serialised with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible payload handed to publishers."""
        return self.model_dump(mode="json", by_alias=True)


class NotificationEvent(_WireModel):
    """Describes a file that has been (or is about to be) delivered."""

    original_path: str
    final_path: str
    base_directory: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    final_name: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransferErrorEvent(_WireModel):
    """Reports a failed transfer attempt on the error channel."""

    file_path: str
    base_directory: str
    error_message: str
    error_type: ErrorType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransferRecord(BaseModel):
    """An audit record for a single transfer outcome."""

    timestamp: datetime
    base_directory: str
    source_path: str = Field(description="Path of the file when the pass started")
    file_name: str
    outcome: TransferOutcome
    final_path: str = Field(default="", description="Destination in loaded/ when delivered")
    error_message: str = Field(default="", description="Error details if the pass failed")
    file_size_bytes: int = Field(default=0, ge=0)
