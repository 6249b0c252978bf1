"""Transfer operations for single resources."""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from ..config import TRASH_DIR_NAME
from ..exceptions import DriveSyncError
from ..models import Entry
from ..protocols import RemoteClientProtocol
from ..utils import Timestamp, format_size
from .resource import Resource

logger = logging.getLogger(__name__)


class SyncOperations:
    """Uploads, downloads and deletions of one resource at a time.

    The operations only touch the local disk and the remote side. Updating
    the resource tree with their results is left to the caller.
    """

    def __init__(self, client: RemoteClientProtocol, root_dir: Path):
        """Initialize sync operations.

        Args:
            client: Remote API client
            root_dir: Local directory of the tree root
        """
        self.client = client
        self.root_dir = Path(root_dir)

    @property
    def trash_dir(self) -> Path:
        return self.root_dir / TRASH_DIR_NAME

    def _parent_remote_id(self, resource: Resource) -> str:
        parent = resource.parent
        if parent is None or not parent.remote_id:
            raise DriveSyncError(
                f"Parent folder of {resource.rel_path} does not exist remotely"
            )
        return parent.remote_id

    def upload(self, resource: Resource) -> Entry:
        """Create a folder or upload a file on the remote side.

        Files that already have a remote identifier get new content instead
        of a new remote object. The local modification time of an uploaded
        file is set to the server one, as for downloads.

        Args:
            resource: Resource to upload

        Returns:
            Entry describing the remote object after the upload

        Raises:
            DriveSyncError: If the parent folder has no remote identifier
            DriveAPIError: If the upload fails
        """
        parent_id = self._parent_remote_id(resource)

        if resource.is_folder:
            logger.debug(f"Creating remote folder {resource.rel_path}")
            return self.client.create_folder(resource.name, parent_id)

        local_path = resource.local_path(self.root_dir)
        if logger.isEnabledFor(logging.DEBUG) and local_path.exists():
            size = format_size(local_path.stat().st_size)
            logger.debug(f"Uploading {resource.rel_path} ({size})")
        entry = self.client.upload_file(
            local_path,
            parent_id,
            resource.name,
            existing_id=resource.remote_id or None,
        )
        self._set_mtime(local_path, entry.modified_time)
        return entry

    def download(self, resource: Resource) -> Path:
        """Create a local folder or download a file.

        The modification time of a downloaded file is set to the remote one,
        so the next scan does not mistake it for a local change.

        Args:
            resource: Resource to download

        Returns:
            Local path of the resource

        Raises:
            DriveSyncError: If a file has no download location
            DriveAPIError: If the download fails
        """
        local_path = resource.local_path(self.root_dir)

        if resource.is_folder:
            logger.debug(f"Creating local folder {resource.rel_path}")
            local_path.mkdir(parents=True, exist_ok=True)
            return local_path

        if not resource.content_src:
            raise DriveSyncError(f"No download location for {resource.rel_path}")

        logger.debug(f"Downloading {resource.rel_path}")
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self.client.download_file(resource.content_src, local_path)

        self._set_mtime(local_path, resource.remote_mtime)
        return local_path

    @staticmethod
    def _set_mtime(local_path: Path, mtime: Optional[Timestamp]) -> None:
        if mtime:
            mtime_ns = mtime.to_nanoseconds()
            os.utime(local_path, ns=(mtime_ns, mtime_ns))

    def delete_local(self, resource: Resource) -> Path:
        """Move a local file or folder into the local trash folder.

        The trash keeps the relative path; an existing item at the target
        is replaced.

        Args:
            resource: Resource to delete

        Returns:
            Path inside the trash folder

        Raises:
            OSError: If the move fails
        """
        source = resource.local_path(self.root_dir)
        target = self.trash_dir / resource.rel_path
        target.parent.mkdir(parents=True, exist_ok=True)

        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()

        logger.debug(f"Moving {resource.rel_path} to {target}")
        shutil.move(str(source), str(target))
        return target

    def delete_remote(self, resource: Resource) -> None:
        """Move the remote object of a resource to the remote trash."""
        if not resource.remote_id:
            raise DriveSyncError(f"{resource.rel_path} has no remote identifier")
        logger.debug(f"Trashing remote {resource.rel_path} ({resource.remote_id})")
        self.client.trash(resource.remote_id)
