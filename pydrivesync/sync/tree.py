"""Resource tree with a remote identifier index."""

import logging
from collections.abc import Iterator
from typing import Optional

from ..models import Entry
from ..utils import Timestamp
from .resource import Resource, ResourceKind

logger = logging.getLogger(__name__)


class ResourceTree:
    """Owns the root resource and, through it, every node of the tree.

    Besides the parent/child links the tree keeps an index from remote
    identifier to resource. Only nodes attached below the root are ever
    registered in the index.
    """

    def __init__(self, root_folder: str = ".", root_id: str = "root"):
        """Initialize the tree.

        Args:
            root_folder: Label of the root resource
            root_id: Remote identifier of the root folder
        """
        self._root = Resource(root_folder, ResourceKind.FOLDER, is_root=True)
        self._by_id: dict[str, Resource] = {}
        self.set_root_remote_id(root_id)

    @property
    def root(self) -> Resource:
        return self._root

    def set_root_remote_id(self, remote_id: str) -> None:
        """Assign the remote identifier of the root folder."""
        old = self._root.remote_id
        if old and self._by_id.get(old) is self._root:
            del self._by_id[old]
        self._root.remote_id = remote_id
        if remote_id:
            self._by_id[remote_id] = self._root

    def insert(self, resource: Resource) -> None:
        """Register a resource in the identifier index.

        The caller must already have attached it via ``add_child``.
        Resources without a remote identifier are not indexed.
        """
        if not resource.is_root and resource.parent is None:
            raise ValueError(f"Resource {resource.name} is not attached to the tree")
        if resource.remote_id:
            self._by_id[resource.remote_id] = resource

    def find_by_remote_id(self, remote_id: str) -> Optional[Resource]:
        if not remote_id:
            return None
        return self._by_id.get(remote_id)

    def find_by_path(self, rel_path: str) -> Optional[Resource]:
        """Find a resource by its root-relative path.

        Empty segments and "." segments are skipped, so "", "." and "./a"
        are all accepted.
        """
        node: Optional[Resource] = self._root
        for part in rel_path.replace("\\", "/").split("/"):
            if part in ("", "."):
                continue
            if node is None:
                return None
            node = node.find_child(part)
        return node

    def update(self, resource: Resource, entry: Entry, last_sync: Timestamp) -> None:
        """Merge a remote entry into a resource and keep the index current.

        Args:
            resource: Resource attached to this tree
            entry: Remote metadata
            last_sync: Watermark passed on to ``Resource.from_remote``
        """
        old_id = resource.remote_id
        if old_id and old_id != entry.self_id and self._by_id.get(old_id) is resource:
            del self._by_id[old_id]

        resource.from_remote(entry, last_sync)
        self.insert(resource)

    def __iter__(self) -> Iterator[Resource]:
        return self._root.iter_tree()

    def __len__(self) -> int:
        return sum(1 for _ in self._root.iter_tree())

    def indexed_count(self) -> int:
        """Number of resources registered in the identifier index."""
        return len(self._by_id)
