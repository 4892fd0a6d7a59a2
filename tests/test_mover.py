"""Tests for the atomic mover and its retry policy."""

import errno
import os
from unittest.mock import AsyncMock, patch

import pytest

from courier.transfer.errors import MoveExhausted, MoveFailure
from courier.transfer.mover import FileMover, is_transient, move_file


class TestMoveFile:
    def test_moves_file(self, tmp_path):
        src = tmp_path / "new" / "doc.csv"
        src.parent.mkdir()
        src.write_bytes(b"payload")
        target = tmp_path / "loading" / "doc.csv"
        target.parent.mkdir()

        assert move_file(src, target) == target
        assert target.read_bytes() == b"payload"
        assert not src.exists()

    def test_overwrites_existing_target(self, tmp_path):
        src = tmp_path / "a.csv"
        target = tmp_path / "b.csv"
        src.write_bytes(b"new")
        target.write_bytes(b"old")

        move_file(src, target)

        assert target.read_bytes() == b"new"

    def test_creates_target_directory(self, tmp_path):
        src = tmp_path / "a.csv"
        src.write_bytes(b"data")
        target = tmp_path / "deep" / "nested" / "a.csv"

        move_file(src, target)

        assert target.exists()

    def test_missing_source_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            move_file(tmp_path / "absent.csv", tmp_path / "b.csv")

    def test_falls_back_to_copy_when_rename_unsupported(self, tmp_path):
        src = tmp_path / "a.csv"
        src.write_bytes(b"data")
        target = tmp_path / "out" / "a.csv"
        real_replace = os.replace
        calls = []

        def cross_device_once(source, destination):
            calls.append((str(source), str(destination)))
            if len(calls) == 1:
                raise OSError(errno.EXDEV, "Invalid cross-device link")
            return real_replace(source, destination)

        with patch("courier.transfer.mover.os.replace", side_effect=cross_device_once):
            move_file(src, target)

        assert target.read_bytes() == b"data"
        assert not src.exists()
        # copy landed in a temporary sibling first, then renamed into place
        assert calls[1] == (str(target.with_name(".a.csv.tmp")), str(target))
        assert sorted(p.name for p in target.parent.iterdir()) == ["a.csv"]

    def test_failed_copy_removes_partial_temp_file(self, tmp_path):
        src = tmp_path / "a.csv"
        src.write_bytes(b"data" * 10)
        target = tmp_path / "loaded" / "a.csv"

        def disk_full(source, destination):
            with open(destination, "wb") as f:
                f.write(b"0123456789")
            raise OSError(errno.ENOSPC, "No space left on device")

        with (
            patch(
                "courier.transfer.mover.os.replace",
                side_effect=OSError(errno.EXDEV, "Invalid cross-device link"),
            ),
            patch("courier.transfer.mover.shutil.copy2", side_effect=disk_full),
            pytest.raises(OSError),
        ):
            move_file(src, target)

        assert list(target.parent.iterdir()) == []
        assert src.read_bytes() == b"data" * 10

    async def test_failed_copy_leaves_no_temp_file_after_retries(self, tmp_path):
        src = tmp_path / "a.csv"
        src.write_bytes(b"data")
        target = tmp_path / "loaded" / "a.csv"

        def interrupted(source, destination):
            with open(destination, "wb") as f:
                f.write(b"da")
            raise OSError(errno.EIO, "I/O error")

        with (
            patch(
                "courier.transfer.mover.os.replace",
                side_effect=OSError(errno.EXDEV, "Invalid cross-device link"),
            ),
            patch("courier.transfer.mover.shutil.copy2", side_effect=interrupted),
            patch("courier.transfer.mover.asyncio.sleep", new_callable=AsyncMock),
            pytest.raises(MoveExhausted),
        ):
            await FileMover(attempts=2, delay=0).move(src, target)

        assert list(target.parent.iterdir()) == []
        assert src.exists()

    def test_other_rename_errors_propagate(self, tmp_path):
        src = tmp_path / "a.csv"
        src.write_bytes(b"data")

        with (
            patch("courier.transfer.mover.os.replace", side_effect=OSError(errno.EBUSY, "busy")),
            pytest.raises(OSError),
        ):
            move_file(src, tmp_path / "b.csv")
        assert src.exists()


class TestIsTransient:
    @pytest.mark.parametrize("code", [errno.EBUSY, errno.EIO, errno.EAGAIN, errno.ETIMEDOUT])
    def test_transient_codes(self, code):
        assert is_transient(OSError(code, "x")) is True

    def test_no_errno_is_transient(self):
        assert is_transient(OSError("mystery")) is True

    def test_not_found_is_permanent(self):
        assert is_transient(FileNotFoundError(errno.ENOENT, "gone")) is False

    def test_permission_is_permanent(self):
        assert is_transient(PermissionError(errno.EACCES, "denied")) is False


class TestFileMoverRetry:
    async def test_success_first_try(self, tmp_path):
        src = tmp_path / "a.csv"
        src.write_bytes(b"data")

        result = await FileMover(attempts=3, delay=0).move(src, tmp_path / "b.csv")

        assert result == tmp_path / "b.csv"
        assert result.exists()

    async def test_retries_transient_then_succeeds(self, tmp_path):
        target = tmp_path / "b.csv"
        sleep = AsyncMock()
        with (
            patch(
                "courier.transfer.mover.move_file",
                side_effect=[OSError(errno.EBUSY, "busy"), target],
            ) as mock_move,
            patch("courier.transfer.mover.asyncio.sleep", new=sleep),
        ):
            result = await FileMover(attempts=3, delay=2.0).move(tmp_path / "a.csv", target)

        assert result == target
        assert mock_move.call_count == 2
        sleep.assert_awaited_once_with(2.0)

    async def test_exhausted_after_configured_attempts(self, tmp_path):
        with (
            patch(
                "courier.transfer.mover.move_file",
                side_effect=OSError(errno.EIO, "I/O error"),
            ) as mock_move,
            patch("courier.transfer.mover.asyncio.sleep", new=AsyncMock()) as sleep,
            pytest.raises(MoveExhausted) as exc_info,
        ):
            await FileMover(attempts=3, delay=1.0).move(tmp_path / "a.csv", tmp_path / "b.csv")

        assert mock_move.call_count == 3
        assert sleep.await_count == 2
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value, MoveFailure)

    async def test_missing_source_not_retried(self, tmp_path):
        with (
            patch("courier.transfer.mover.asyncio.sleep", new=AsyncMock()) as sleep,
            pytest.raises(MoveFailure) as exc_info,
        ):
            await FileMover(attempts=3, delay=1.0).move(tmp_path / "absent.csv", tmp_path / "b.csv")

        assert not isinstance(exc_info.value, MoveExhausted)
        sleep.assert_not_awaited()

    async def test_permanent_error_not_retried(self, tmp_path):
        with (
            patch(
                "courier.transfer.mover.move_file",
                side_effect=PermissionError(errno.EACCES, "denied"),
            ) as mock_move,
            pytest.raises(MoveFailure),
        ):
            await FileMover(attempts=3, delay=0).move(tmp_path / "a.csv", tmp_path / "b.csv")

        assert mock_move.call_count == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            FileMover(attempts=0)
