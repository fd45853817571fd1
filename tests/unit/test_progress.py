from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from shopfloor_import.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


def test_tracker_with_tty_drives_tqdm():
    with patch("shopfloor_import.services.progress.is_tty_enabled", return_value=True), \
         patch("shopfloor_import.services.progress.tqdm") as mock_tqdm:
        with ProgressTracker(2, description="Importing files") as tracker:
            tracker.start_file(Path("data/schicht.csv"))
            tracker.set_postfix(success=1, failed=0, rows=3)
            tracker.finish_file(success=True)
        bar = mock_tqdm.return_value
        mock_tqdm.assert_called_once()
        assert mock_tqdm.call_args.kwargs["total"] == 2
        bar.set_description.assert_any_call("Importing files (schicht.csv)")
        bar.set_postfix.assert_called_once_with(success=1, failed=0, rows=3)
        bar.update.assert_called_once_with(1)
        bar.close.assert_called_once()
        assert tracker.current_file == 1
        assert tracker.pbar is None


def test_tracker_without_tty_is_silent():
    with patch("shopfloor_import.services.progress.is_tty_enabled", return_value=False), \
         patch("shopfloor_import.services.progress.tqdm") as mock_tqdm:
        tracker = ProgressTracker(3)
        tracker.start_file(Path("a.csv"))
        tracker.finish_file()
        tracker.close()
        mock_tqdm.assert_not_called()
        assert tracker.enabled is False
        assert tracker.current_file == 1
