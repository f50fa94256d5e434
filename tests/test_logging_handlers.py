import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from chatrelay.logging_handlers import DateStampedFileHandler, cleanup_old_logs


def test_date_stamped_file_handler_creates_expected_path(tmp_path) -> None:
    current = datetime(2024, 5, 26, 12, 34, 56, tzinfo=timezone.utc)
    handler = DateStampedFileHandler(
        tmp_path / "server",
        prefix="relay",
        current_time=current,
    )
    try:
        expected_file = (
            tmp_path / "server" / "2024-05-26" / "relay_2024-05-26_12-34-56_UTC.log"
        ).resolve()
        file_path = Path(handler.baseFilename)
        assert file_path == expected_file == handler.log_path
        assert file_path.exists()

        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname=__file__,
            lineno=0,
            msg="hello world",
            args=(),
            exc_info=None,
        )
        handler.emit(record)

        assert "hello world" in file_path.read_text(encoding="utf-8")
    finally:
        handler.close()


def test_cleanup_old_logs(tmp_path) -> None:
    """Old log files are deleted and emptied date folders removed."""
    log_dir = tmp_path / "logs"
    old_dir = log_dir / "2024-01-01"
    new_dir = log_dir / "2024-01-03"
    old_dir.mkdir(parents=True)
    new_dir.mkdir(parents=True)
    old_file = old_dir / "chatrelay_old.log"
    new_file = new_dir / "chatrelay_new.log"
    old_file.write_text("old")
    new_file.write_text("new")

    now = datetime.now(timezone.utc)
    stale = (now - timedelta(hours=48)).timestamp()
    os.utime(old_file, (stale, stale))

    deleted, errors = cleanup_old_logs([log_dir], retention_hours=24, now=now)

    assert (deleted, errors) == (1, 0)
    assert not old_file.exists()
    assert not old_dir.exists()
    assert new_file.exists()


def test_cleanup_disabled_with_zero_retention(tmp_path) -> None:
    log_file = tmp_path / "chatrelay.log"
    log_file.write_text("keep")

    assert cleanup_old_logs([tmp_path], retention_hours=0) == (0, 0)
    assert log_file.exists()
