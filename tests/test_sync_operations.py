"""Tests for single-resource sync operations."""

import os
from pathlib import Path
from unittest.mock import Mock

import pytest

from pydrivesync.api import DriveClient
from pydrivesync.exceptions import DriveSyncError
from pydrivesync.models import Entry
from pydrivesync.sync.operations import SyncOperations
from pydrivesync.sync.resource import Resource, ResourceKind
from pydrivesync.utils import Timestamp

REMOTE_TIME = Timestamp(1_600_000_000, 250_000_000)


@pytest.fixture
def mock_client():
    """Create a mock API client."""
    return Mock(spec=DriveClient)


@pytest.fixture
def root_dir(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def root():
    res = Resource(".", ResourceKind.FOLDER, is_root=True)
    res.remote_id = "root"
    return res


def _attach(parent: Resource, name: str, kind=ResourceKind.FILE) -> Resource:
    res = Resource(name, kind)
    parent.add_child(res)
    return res


class TestUpload:
    """Tests for SyncOperations.upload."""

    def test_upload_new_file(self, mock_client, root_dir, root):
        (root_dir / "a.txt").write_text("data")
        res = _attach(root, "a.txt")
        mock_client.upload_file.return_value = Entry(
            "f1", "a.txt", frozenset({"root"}), modified_time=REMOTE_TIME
        )

        entry = SyncOperations(mock_client, root_dir).upload(res)

        assert entry.self_id == "f1"
        mock_client.upload_file.assert_called_once_with(
            root_dir / "a.txt", "root", "a.txt", existing_id=None
        )

    def test_upload_aligns_local_mtime(self, mock_client, root_dir, root):
        """The local file takes the server modification time."""
        (root_dir / "a.txt").write_text("data")
        res = _attach(root, "a.txt")
        mock_client.upload_file.return_value = Entry(
            "f1", "a.txt", frozenset({"root"}), modified_time=REMOTE_TIME
        )

        SyncOperations(mock_client, root_dir).upload(res)

        assert os.stat(root_dir / "a.txt").st_mtime_ns == REMOTE_TIME.to_nanoseconds()

    def test_upload_existing_file_updates_content(self, mock_client, root_dir, root):
        (root_dir / "a.txt").write_text("data")
        res = _attach(root, "a.txt")
        res.remote_id = "f1"
        mock_client.upload_file.return_value = Entry("f1", "a.txt")

        SyncOperations(mock_client, root_dir).upload(res)

        assert mock_client.upload_file.call_args.kwargs["existing_id"] == "f1"

    def test_upload_folder_creates_folder(self, mock_client, root_dir, root):
        res = _attach(root, "docs", ResourceKind.FOLDER)
        mock_client.create_folder.return_value = Entry("d1", "docs", is_folder=True)

        entry = SyncOperations(mock_client, root_dir).upload(res)

        assert entry.self_id == "d1"
        mock_client.create_folder.assert_called_once_with("docs", "root")
        mock_client.upload_file.assert_not_called()

    def test_upload_without_remote_parent_raises(self, mock_client, root_dir, root):
        docs = _attach(root, "docs", ResourceKind.FOLDER)
        res = _attach(docs, "a.txt")

        with pytest.raises(DriveSyncError, match="does not exist remotely"):
            SyncOperations(mock_client, root_dir).upload(res)


class TestDownload:
    """Tests for SyncOperations.download."""

    def test_download_file(self, mock_client, root_dir, root):
        """Files are downloaded and take the remote modification time."""
        docs = _attach(root, "docs", ResourceKind.FOLDER)
        res = _attach(docs, "a.txt")
        res.content_src = "https://example.com/f1"
        res.remote_mtime = REMOTE_TIME

        def fake_download(content_src: str, output_path: Path) -> Path:
            output_path.write_text("remote data")
            return output_path

        mock_client.download_file.side_effect = fake_download

        path = SyncOperations(mock_client, root_dir).download(res)

        assert path == root_dir / "docs" / "a.txt"
        assert path.read_text() == "remote data"
        assert os.stat(path).st_mtime_ns == REMOTE_TIME.to_nanoseconds()

    def test_download_folder_creates_directory(self, mock_client, root_dir, root):
        res = _attach(root, "docs", ResourceKind.FOLDER)

        SyncOperations(mock_client, root_dir).download(res)

        assert (root_dir / "docs").is_dir()
        mock_client.download_file.assert_not_called()

    def test_download_without_content_raises(self, mock_client, root_dir, root):
        res = _attach(root, "a.txt")
        with pytest.raises(DriveSyncError, match="No download location"):
            SyncOperations(mock_client, root_dir).download(res)


class TestDelete:
    """Tests for local and remote deletion."""

    def test_delete_local_moves_to_trash(self, mock_client, root_dir, root):
        (root_dir / "docs").mkdir()
        (root_dir / "docs" / "a.txt").write_text("data")
        docs = _attach(root, "docs", ResourceKind.FOLDER)
        res = _attach(docs, "a.txt")

        target = SyncOperations(mock_client, root_dir).delete_local(res)

        assert target == root_dir / ".trash" / "docs" / "a.txt"
        assert target.read_text() == "data"
        assert not (root_dir / "docs" / "a.txt").exists()

    def test_delete_local_replaces_trashed_copy(self, mock_client, root_dir, root):
        (root_dir / ".trash").mkdir()
        (root_dir / ".trash" / "a.txt").write_text("old")
        (root_dir / "a.txt").write_text("new")
        res = _attach(root, "a.txt")

        target = SyncOperations(mock_client, root_dir).delete_local(res)

        assert target.read_text() == "new"

    def test_delete_local_folder(self, mock_client, root_dir, root):
        (root_dir / "docs").mkdir()
        (root_dir / "docs" / "a.txt").write_text("data")
        res = _attach(root, "docs", ResourceKind.FOLDER)

        SyncOperations(mock_client, root_dir).delete_local(res)

        assert (root_dir / ".trash" / "docs" / "a.txt").exists()
        assert not (root_dir / "docs").exists()

    def test_delete_remote_trashes(self, mock_client, root_dir, root):
        res = _attach(root, "a.txt")
        res.remote_id = "f1"

        SyncOperations(mock_client, root_dir).delete_remote(res)

        mock_client.trash.assert_called_once_with("f1")

    def test_delete_remote_without_id_raises(self, mock_client, root_dir, root):
        res = _attach(root, "a.txt")
        with pytest.raises(DriveSyncError):
            SyncOperations(mock_client, root_dir).delete_remote(res)
