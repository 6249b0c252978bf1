"""Protocols for the collaborators of the reconciler.

The reconciler in ``pydrivesync.sync.state`` only talks to these
interfaces, so the remote API client and the transfer engine can be
swapped out (e.g. for tests).
"""

from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

if TYPE_CHECKING:
    from .config import SyncOptions
    from .models import Entry
    from .sync.resource import Resource
    from .utils import Timestamp


class RemoteClientProtocol(Protocol):
    """Remote storage: entry listings, change feed and transfers."""

    def get_about(self) -> dict[str, Any]:
        """Return account information with "rootFolderId" and "largestChangeId"."""
        ...

    def iter_entries(self) -> Iterator["Entry"]:
        """Yield every remote object as an Entry (full listing)."""
        ...

    def iter_changes(self, start_change_id: int) -> Iterator["Entry"]:
        """Yield change feed entries starting at the given change id."""
        ...

    def create_folder(self, name: str, parent_id: str) -> "Entry":
        ...

    def upload_file(
        self,
        local_path: Path,
        parent_id: str,
        name: str,
        existing_id: Optional[str] = None,
    ) -> "Entry":
        """Upload a new file, or new content for ``existing_id``."""
        ...

    def download_file(self, content_src: str, output_path: Path) -> Path:
        ...

    def trash(self, remote_id: str) -> None:
        ...

    def rename(self, remote_id: str, new_name: str, new_parent_id: str) -> "Entry":
        ...


class Syncer(Protocol):
    """Transfer collaborator driven by ``SyncState.sync``."""

    def sync(
        self,
        root: "Resource",
        last_sync: "Timestamp",
        options: "SyncOptions",
    ) -> "Timestamp":
        """Transfer everything below ``root`` that is out of sync.

        Args:
            root: Root of the subtree to process
            last_sync: Watermark before the pass
            options: Run options

        Returns:
            The watermark after the pass. Returning ``last_sync`` unchanged
            signals that nothing advanced it.
        """
        ...

    @property
    def error_count(self) -> int:
        """Number of transfers that failed during the last ``sync`` call."""
        ...

    def rename(self, resource: "Resource", new_path: Path) -> None:
        """Rename the remote object of ``resource`` to match ``new_path``."""
        ...
