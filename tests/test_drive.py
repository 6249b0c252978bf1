"""Tests for complete sync runs."""

import json
import os
from pathlib import Path
from unittest.mock import Mock

import pytest

from pydrivesync.api import DriveClient
from pydrivesync.config import STATE_FILE_NAME, SyncOptions
from pydrivesync.drive import Drive
from pydrivesync.exceptions import (
    DriveConfigError,
    DriveDownloadError,
    DriveInvalidResponseError,
    DriveUploadError,
)
from pydrivesync.models import Entry
from pydrivesync.output import OutputFormatter
from pydrivesync.protocols import Syncer
from pydrivesync.sync.state import MergeOutcome, Watermarks, save_watermarks
from pydrivesync.utils import Timestamp

OLD = Timestamp(1_500_000_000, 0)
REMOTE = Timestamp(1_700_000_000, 0)
UPLOADED = Timestamp(1_800_000_000, 0)


def _remote(self_id: str, name: str, parent_id: str = "root", **kwargs) -> Entry:
    kwargs.setdefault("modified_time", REMOTE)
    return Entry(
        self_id=self_id,
        name=name,
        parent_ids=frozenset({parent_id}),
        filename=name,
        content_src=f"https://content.example.com/{self_id}",
        **kwargs,
    )


@pytest.fixture
def root_dir(tmp_path):
    root = tmp_path / "drive"
    root.mkdir()
    return root


@pytest.fixture
def mock_client():
    """Create a mock client with an empty remote drive."""
    client = Mock(spec=DriveClient)
    client.get_about.return_value = {"rootFolderId": "root", "largestChangeId": "42"}
    client.iter_entries.return_value = iter([])
    client.iter_changes.return_value = iter([])
    return client


@pytest.fixture
def output():
    return OutputFormatter(quiet=True)


def _read_state(root_dir: Path) -> dict:
    with open(root_dir / STATE_FILE_NAME, encoding="utf-8") as f:
        return json.load(f)


class TestDriveRun:
    """Tests for Drive.run."""

    def test_root_must_be_directory(self, mock_client, tmp_path):
        with pytest.raises(DriveConfigError, match="Not a directory"):
            Drive(mock_client, tmp_path / "missing")

    def test_first_run_reads_full_listing_only(self, mock_client, root_dir, output):
        """Without a change stamp the change feed is not read."""
        result = Drive(mock_client, root_dir, output=output).run()

        mock_client.iter_entries.assert_called_once_with()
        mock_client.iter_changes.assert_not_called()
        assert result.change_stamp == 42

    def test_run_persists_watermarks(self, mock_client, root_dir, output):
        Drive(mock_client, root_dir, output=output).run()

        state = _read_state(root_dir)
        assert state["change_stamp"] == 42
        assert state["last_sync"]["sec"] > 0

    def test_change_feed_starts_after_stored_stamp(
        self, mock_client, root_dir, output
    ):
        save_watermarks(root_dir / STATE_FILE_NAME, Watermarks(OLD, 5))

        Drive(mock_client, root_dir, output=output).run()

        mock_client.iter_changes.assert_called_once_with(6)

    def test_force_skips_change_feed(self, mock_client, root_dir, output):
        save_watermarks(root_dir / STATE_FILE_NAME, Watermarks(OLD, 5))

        Drive(mock_client, root_dir, SyncOptions(force=True), output=output).run()

        mock_client.iter_changes.assert_not_called()

    def test_dry_run_does_not_write_state(self, mock_client, root_dir, output):
        (root_dir / "new.txt").write_text("local")

        result = Drive(
            mock_client, root_dir, SyncOptions(dry_run=True), output=output
        ).run()

        assert not (root_dir / STATE_FILE_NAME).exists()
        assert result.change_stamp is None
        mock_client.upload_file.assert_not_called()

    def test_result_dict_reports_errors_and_options(
        self, mock_client, root_dir, output
    ):
        options = SyncOptions(upload_only=True, max_workers=3)

        data = Drive(mock_client, root_dir, options, output=output).run().to_dict()

        assert data["errors"] == 0
        assert data["change_stamp"] == 42
        assert data["options"]["uploadOnly"] is True
        assert data["options"]["maxWorkers"] == 3

    def test_missing_root_folder_id_raises(self, mock_client, root_dir, output):
        mock_client.get_about.return_value = {"largestChangeId": "1"}

        with pytest.raises(DriveInvalidResponseError, match="rootFolderId"):
            Drive(mock_client, root_dir, output=output).run()

    def test_missing_largest_change_id_raises(self, mock_client, root_dir, output):
        mock_client.get_about.return_value = {"rootFolderId": "root"}

        with pytest.raises(DriveInvalidResponseError, match="largestChangeId"):
            Drive(mock_client, root_dir, output=output).run()
        assert not (root_dir / STATE_FILE_NAME).exists()

    def test_orphans_are_counted(self, mock_client, root_dir, output):
        mock_client.iter_entries.return_value = iter(
            [_remote("f1", "lost.txt", parent_id="shared-folder")]
        )

        result = Drive(mock_client, root_dir, output=output).run()

        assert result.orphaned == 1
        assert result.outcomes[MergeOutcome.DEFERRED] == 1
        mock_client.download_file.assert_not_called()

    def test_injected_syncer(self, mock_client, root_dir):
        """A syncer that advances the watermark decides the new last sync."""
        syncer = Mock(spec=Syncer)
        syncer.sync.return_value = UPLOADED
        syncer.error_count = 0

        result = Drive(mock_client, root_dir, syncer=syncer).run()

        assert result.last_sync == UPLOADED
        assert _read_state(root_dir)["last_sync"] == {
            "sec": UPLOADED.sec,
            "nsec": 0,
        }

    def test_two_way_sync(self, mock_client, root_dir, output):
        """A local file is uploaded and a remote file downloaded."""
        (root_dir / "local.txt").write_text("from disk")
        mock_client.iter_entries.return_value = iter(
            [_remote("f2", "remote.txt")]
        )
        mock_client.upload_file.return_value = _remote(
            "f1", "local.txt", modified_time=UPLOADED
        )

        def fake_download(content_src: str, output_path: Path) -> Path:
            output_path.write_text("from remote")
            return output_path

        mock_client.download_file.side_effect = fake_download

        result = Drive(mock_client, root_dir, output=output).run()

        mock_client.upload_file.assert_called_once_with(
            root_dir / "local.txt", "root", "local.txt", existing_id=None
        )
        assert (root_dir / "remote.txt").read_text() == "from remote"
        assert os.stat(root_dir / "remote.txt").st_mtime_ns == (
            REMOTE.to_nanoseconds()
        )
        assert result.last_sync == UPLOADED
        assert _read_state(root_dir) == {
            "last_sync": {"sec": UPLOADED.sec, "nsec": 0},
            "change_stamp": 42,
        }

    def test_remote_deletion_moves_local_file_to_trash(
        self, mock_client, root_dir, output
    ):
        """A file synced before but gone remotely is moved to the trash."""
        save_watermarks(root_dir / STATE_FILE_NAME, Watermarks(REMOTE, 5))
        old = root_dir / "old.txt"
        old.write_text("stale")
        os.utime(old, ns=(OLD.to_nanoseconds(), OLD.to_nanoseconds()))

        Drive(mock_client, root_dir, output=output).run()

        assert not old.exists()
        assert (root_dir / ".trash" / "old.txt").read_text() == "stale"


class TestDriveFailedTransfers:
    """Runs whose transfers fail leave the stored state untouched."""

    @pytest.fixture
    def client(self, mock_client, root_dir):
        save_watermarks(root_dir / STATE_FILE_NAME, Watermarks(OLD, 5))
        mock_client.iter_changes.side_effect = lambda start: iter([])
        return mock_client

    def test_failed_download_is_retried_not_trashed(self, client, root_dir, output):
        client.iter_entries.side_effect = lambda: iter([_remote("f1", "report.txt")])
        client.download_file.side_effect = DriveDownloadError("connection reset")

        first = Drive(client, root_dir, output=output).run()

        assert first.errors == 1
        assert _read_state(root_dir) == {
            "last_sync": {"sec": OLD.sec, "nsec": 0},
            "change_stamp": 5,
        }

        def fake_download(content_src: str, output_path: Path) -> Path:
            output_path.write_text("report")
            return output_path

        client.download_file.side_effect = fake_download

        second = Drive(client, root_dir, output=output).run()

        assert second.errors == 0
        assert (root_dir / "report.txt").read_text() == "report"
        client.trash.assert_not_called()
        assert _read_state(root_dir)["change_stamp"] == 42

    def test_failed_upload_keeps_local_file(self, client, root_dir, output):
        (root_dir / "new.txt").write_text("draft")
        client.iter_entries.side_effect = lambda: iter([])
        client.upload_file.side_effect = [
            DriveUploadError("quota exceeded"),
            _remote("f1", "new.txt", modified_time=UPLOADED),
        ]

        first = Drive(client, root_dir, output=output).run()
        second = Drive(client, root_dir, output=output).run()

        assert first.errors == 1
        assert second.errors == 0
        assert (root_dir / "new.txt").read_text() == "draft"
        assert not (root_dir / ".trash" / "new.txt").exists()
        assert client.upload_file.call_count == 2
        assert second.last_sync == UPLOADED


class TestDriveRename:
    """Tests for Drive.rename."""

    def test_rename_local_and_remote(self, mock_client, root_dir, output):
        (root_dir / "a.txt").write_text("data")
        mock_client.iter_entries.return_value = iter([_remote("f1", "a.txt")])
        mock_client.rename.return_value = _remote("f1", "b.txt")

        Drive(mock_client, root_dir, output=output).rename("a.txt", "b.txt")

        assert (root_dir / "b.txt").read_text() == "data"
        assert not (root_dir / "a.txt").exists()
        mock_client.rename.assert_called_once_with("f1", "b.txt", "root")
