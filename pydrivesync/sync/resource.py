"""Resource nodes of the merged local/remote tree."""

import logging
import os
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import Optional

from ..models import Entry
from ..utils import Timestamp

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    """Kind of a resource."""

    FILE = "file"
    FOLDER = "folder"


class ResourceState(str, Enum):
    """Reconciliation state of a resource."""

    UNKNOWN = "unknown"
    """Not classified yet"""

    SYNC = "sync"
    """Local and remote copies agree"""

    LOCAL_NEW = "local_new"
    """Created locally, not present remotely"""

    LOCAL_CHANGED = "local_changed"
    """Modified locally since the last sync"""

    LOCAL_DELETED = "local_deleted"
    """Present remotely, deleted locally since the last sync"""

    REMOTE_NEW = "remote_new"
    """Created remotely, not present locally"""

    REMOTE_CHANGED = "remote_changed"
    """Modified remotely since the last sync"""

    REMOTE_DELETED = "remote_deleted"
    """Present locally, deleted remotely since the last sync"""


# States a child takes over from its parent folder during the remote merge.
# Folders only known locally have no remote id, so no remote child attaches.
_INHERITED_STATES = (ResourceState.REMOTE_NEW, ResourceState.LOCAL_DELETED)


class Resource:
    """One file or folder of the merged tree.

    A resource carries both its local attributes (modification time, whether
    it was seen on disk) and its remote attributes (identifier, parent,
    modification time, content source). Children are owned by their parent
    and keyed by name; ``parent`` is a plain back reference used for lookups
    and path computation only.
    """

    def __init__(
        self,
        name: str,
        kind: ResourceKind = ResourceKind.FILE,
        is_root: bool = False,
    ):
        self.name = name
        self.kind = ResourceKind(kind)
        self.parent: Optional[Resource] = None
        self._children: dict[str, Resource] = {}
        self._is_root = is_root

        # local side
        self.local_mtime: Optional[Timestamp] = None
        self.seen_at: Optional[Timestamp] = None
        self.local_state = ResourceState.UNKNOWN

        # remote side
        self.remote_id = ""
        self.parent_id = ""
        self.remote_mtime: Optional[Timestamp] = None
        self.content_src = ""

        self.state = ResourceState.SYNC if is_root else ResourceState.UNKNOWN

    def __repr__(self) -> str:
        return (
            f"Resource({self.rel_path or self.name!r}, kind={self.kind.value}, "
            f"state={self.state.value})"
        )

    @property
    def is_root(self) -> bool:
        return self._is_root

    @property
    def local_exists(self) -> bool:
        """Whether the resource was seen on disk during this run."""
        return self.seen_at is not None

    @property
    def is_folder(self) -> bool:
        return self.kind == ResourceKind.FOLDER

    @property
    def children(self) -> list["Resource"]:
        return list(self._children.values())

    def add_child(self, child: "Resource") -> None:
        """Attach a child resource.

        Args:
            child: Resource to attach; must not have a parent yet

        Raises:
            ValueError: If this resource is not a folder, the child is
                already attached, or a child with the same name exists
        """
        if not self.is_folder:
            raise ValueError(f"Cannot add child to file resource {self.rel_path}")
        if child.parent is not None or child.is_root:
            raise ValueError(f"Resource {child.name} is already attached")
        if child.name in self._children:
            raise ValueError(
                f"Folder {self.rel_path or '/'} already has a child named {child.name}"
            )
        child.parent = self
        self._children[child.name] = child

    def find_child(self, name: str) -> Optional["Resource"]:
        """Find a direct child by exact (case-sensitive) name."""
        return self._children.get(name)

    @property
    def rel_path(self) -> str:
        """Path relative to the root, using forward slashes.

        The root's own relative path is the empty string.
        """
        parts: list[str] = []
        node: Optional[Resource] = self
        while node is not None and not node.is_root:
            parts.append(node.name)
            node = node.parent
        return "/".join(reversed(parts))

    def child_rel_path(self, name: str) -> str:
        """Relative path a child with the given name would have."""
        if self.is_root:
            return name
        return f"{self.rel_path}/{name}"

    def local_path(self, root_dir: Path) -> Path:
        rel = self.rel_path
        return root_dir / rel if rel else root_dir

    def iter_tree(self) -> Iterator["Resource"]:
        """Iterate over this resource and all descendants, parents first."""
        yield self
        for child in self.children:
            yield from child.iter_tree()

    def from_local(self, local_path: Path, last_sync: Timestamp) -> None:
        """Record that the resource was seen on disk.

        Classifies the resource provisionally: anything modified after the
        last sync is new locally, anything older is assumed deleted remotely
        until the remote merge says otherwise.

        Args:
            local_path: Absolute path of the resource on disk
            last_sync: Watermark of the previous sync

        Raises:
            OSError: If the path cannot be stat'ed
        """
        self.seen_at = Timestamp.now()

        if self.is_root:
            self.local_state = ResourceState.SYNC
            self.state = ResourceState.SYNC
            return

        st = os.stat(local_path)
        self.local_mtime = Timestamp.from_nanoseconds(st.st_mtime_ns)

        parent_new = (
            self.parent is not None
            and self.parent.local_state == ResourceState.LOCAL_NEW
        )
        if parent_new or self.local_mtime > last_sync:
            self.local_state = ResourceState.LOCAL_NEW
        else:
            self.local_state = ResourceState.REMOTE_DELETED
        self.state = self.local_state

    def from_remote(self, entry: Entry, last_sync: Timestamp) -> None:
        """Merge a remote entry into this resource.

        Args:
            entry: Remote metadata for this resource
            last_sync: Watermark to compare remote modification times
                against; the epoch for change feed entries
        """
        self.remote_id = entry.self_id
        if entry.parent_id:
            self.parent_id = entry.parent_id
        self.remote_mtime = entry.modified_time
        self.content_src = entry.content_src

        self.state = self._classify_remote(entry, last_sync)
        logger.debug(f"{self.kind.value} {self.rel_path} is {self.state.value}")

    def _classify_remote(self, entry: Entry, last_sync: Timestamp) -> ResourceState:
        if self.is_root:
            return ResourceState.SYNC

        if self.parent is not None and self.parent.state in _INHERITED_STATES:
            return self.parent.state

        if not self.local_exists:
            if entry.modified_time > last_sync or entry.change_stamp > 0:
                return ResourceState.REMOTE_NEW
            return ResourceState.LOCAL_DELETED

        if self.is_folder and entry.is_folder:
            return ResourceState.SYNC

        local_mtime = self.local_mtime or Timestamp.epoch()
        if entry.modified_time > last_sync and entry.modified_time > local_mtime:
            return ResourceState.REMOTE_CHANGED
        if self.local_state == ResourceState.LOCAL_NEW:
            return ResourceState.LOCAL_CHANGED
        return ResourceState.SYNC
