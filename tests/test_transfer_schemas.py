"""Tests for transfer schemas and configuration parsing."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from courier.config import parse_source_directories
from courier.schemas.transfer import (
    ErrorType,
    LoaderSettings,
    NotificationEvent,
    TransferErrorEvent,
)


def _make_event(**overrides) -> NotificationEvent:
    fields = dict(
        original_path="/data/inbox/new/orders.csv",
        final_path="/data/inbox/loaded/orders-2026-01-02T03-04-05.000000Z.csv",
        base_directory="/data/inbox",
        timestamp=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
        final_name="orders-2026-01-02T03-04-05.000000Z.csv",
    )
    fields.update(overrides)
    return NotificationEvent(**fields)


class TestNotificationEvent:
    def test_wire_shape_uses_camel_case(self):
        wire = _make_event().to_wire()
        assert set(wire) == {
            "originalPath",
            "finalPath",
            "baseDirectory",
            "timestamp",
            "finalName",
            "metadata",
        }
        assert wire["originalPath"] == "/data/inbox/new/orders.csv"
        assert wire["metadata"] == {}

    def test_timestamp_is_iso_8601(self):
        wire = _make_event().to_wire()
        assert datetime.fromisoformat(wire["timestamp"]) == datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_accepts_wire_keys(self):
        event = NotificationEvent.model_validate(_make_event().to_wire())
        assert event.final_name == "orders-2026-01-02T03-04-05.000000Z.csv"

    def test_is_immutable(self):
        event = _make_event()
        with pytest.raises(ValidationError):
            event.final_path = "/elsewhere"

    def test_timestamp_defaults_to_now(self):
        event = NotificationEvent(
            original_path="a", final_path="b", base_directory="c", final_name="b"
        )
        assert event.timestamp.tzinfo is not None


class TestTransferErrorEvent:
    def test_wire_shape(self):
        wire = TransferErrorEvent(
            file_path="/data/inbox/loading/a.csv",
            base_directory="/data/inbox",
            error_message="boom",
            error_type=ErrorType.PUBLISH_FAILED,
        ).to_wire()
        assert wire["filePath"] == "/data/inbox/loading/a.csv"
        assert wire["errorType"] == "PUBLISH_FAILED"


class TestLoaderSettings:
    def test_defaults(self):
        settings = LoaderSettings()
        assert settings.new_subdirectory == "new"
        assert settings.loading_subdirectory == "loading"
        assert settings.loaded_subdirectory == "loaded"
        assert settings.retry_attempts == 3
        assert settings.retry_delay == 2.0
        assert settings.error_channel == ""

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            LoaderSettings(retry_attempts=0)

    def test_rejects_blank_subdirectory(self):
        with pytest.raises(ValidationError):
            LoaderSettings(loading_subdirectory="  ")


class TestParseSourceDirectories:
    def test_pairs(self):
        assert parse_source_directories("/data/a=orders, /data/b=invoices") == {
            "/data/a": "orders",
            "/data/b": "invoices",
        }

    def test_empty(self):
        assert parse_source_directories("") == {}

    def test_skips_blank_entries(self):
        assert parse_source_directories("/data/a=orders,,") == {"/data/a": "orders"}

    @pytest.mark.parametrize("raw", ["/data/a", "=orders", "/data/a="])
    def test_invalid_entry_raises(self, raw):
        with pytest.raises(ValueError):
            parse_source_directories(raw)
