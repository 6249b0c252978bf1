"""Decide what to do with each resource of the merged tree."""

from dataclasses import dataclass
from enum import Enum
from ..config import SyncOptions
from .resource import Resource, ResourceState


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    UPLOAD = "upload"
    """Upload local file (or create local folder) on the remote side"""

    DOWNLOAD = "download"
    """Download remote file (or create remote folder) locally"""

    DELETE_LOCAL = "delete_local"
    """Move local file to the local trash"""

    DELETE_REMOTE = "delete_remote"
    """Move remote file to the remote trash"""

    SKIP = "skip"
    """Skip resource (no action needed or allowed)"""


# Actions that take a whole subtree with them
_SUBTREE_ACTIONS = (SyncAction.DELETE_LOCAL, SyncAction.DELETE_REMOTE)


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a resource."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    resource: Resource
    """Resource the decision is about"""

    @property
    def relative_path(self) -> str:
        return self.resource.rel_path


class ResourceComparator:
    """Maps resource states to sync actions."""

    def __init__(self, upload_only: bool = False, no_remote_new: bool = False):
        """Initialize resource comparator.

        Args:
            upload_only: Never download or delete local files
            no_remote_new: Do not download resources that are new remotely
        """
        self.upload_only = upload_only
        self.no_remote_new = no_remote_new

    @classmethod
    def from_options(cls, options: SyncOptions) -> "ResourceComparator":
        return cls(upload_only=options.upload_only, no_remote_new=options.no_remote_new)

    def compare_tree(self, root: Resource) -> list[SyncDecision]:
        """Decide actions for a subtree, parents before children.

        Descendants of a folder that is deleted as a whole, or of a folder
        that is out of sync but may not be touched, get no decision of
        their own.

        Args:
            root: Root of the subtree

        Returns:
            List of SyncDecision objects in pre-order
        """
        decisions: list[SyncDecision] = []
        self._compare_subtree(root, decisions)
        return decisions

    def _compare_subtree(
        self, resource: Resource, decisions: list[SyncDecision]
    ) -> None:
        decision = self.decide(resource)
        decisions.append(decision)

        if not resource.is_folder:
            return
        if decision.action in _SUBTREE_ACTIONS:
            return
        if (
            decision.action == SyncAction.SKIP
            and not resource.is_root
            and resource.state != ResourceState.SYNC
        ):
            return

        for child in resource.children:
            self._compare_subtree(child, decisions)

    def decide(self, resource: Resource) -> SyncDecision:
        """Determine the action for a single resource.

        Args:
            resource: Resource to examine

        Returns:
            SyncDecision for this resource
        """
        kind = resource.kind.value
        state = resource.state

        if resource.is_root:
            return self._decision(SyncAction.SKIP, "Root folder", resource)

        if state == ResourceState.SYNC:
            return self._decision(SyncAction.SKIP, "In sync", resource)

        if state == ResourceState.LOCAL_NEW:
            return self._decision(SyncAction.UPLOAD, f"New local {kind}", resource)

        if state == ResourceState.LOCAL_CHANGED:
            return self._decision(SyncAction.UPLOAD, "Local file is newer", resource)

        if state == ResourceState.LOCAL_DELETED:
            return self._decision(
                SyncAction.DELETE_REMOTE,
                f"{kind.capitalize()} deleted locally",
                resource,
            )

        if state == ResourceState.REMOTE_NEW:
            if self.upload_only:
                return self._prevented(resource)
            if self.no_remote_new:
                return self._decision(
                    SyncAction.SKIP, f"New remote {kind} not downloaded", resource
                )
            return self._decision(SyncAction.DOWNLOAD, f"New remote {kind}", resource)

        if state == ResourceState.REMOTE_CHANGED:
            if self.upload_only:
                return self._prevented(resource)
            return self._decision(SyncAction.DOWNLOAD, "Remote file is newer", resource)

        if state == ResourceState.REMOTE_DELETED:
            if self.upload_only:
                return self._prevented(resource)
            return self._decision(
                SyncAction.DELETE_LOCAL,
                f"{kind.capitalize()} deleted from remote",
                resource,
            )

        return self._decision(SyncAction.SKIP, f"State {state.value}", resource)

    def _prevented(self, resource: Resource) -> SyncDecision:
        return self._decision(
            SyncAction.SKIP,
            f"{resource.state.value} but upload-only mode prevents action",
            resource,
        )

    @staticmethod
    def _decision(
        action: SyncAction, reason: str, resource: Resource
    ) -> SyncDecision:
        return SyncDecision(action=action, reason=reason, resource=resource)


_STAT_KEYS = {
    SyncAction.UPLOAD: "uploads",
    SyncAction.DOWNLOAD: "downloads",
    SyncAction.DELETE_LOCAL: "deletes_local",
    SyncAction.DELETE_REMOTE: "deletes_remote",
    SyncAction.SKIP: "skips",
}


def categorize_decisions(decisions: list[SyncDecision]) -> dict:
    """Count decisions per action.

    Args:
        decisions: List of sync decisions

    Returns:
        Dictionary with statistics
    """
    stats = create_empty_stats()
    for decision in decisions:
        if decision.resource.is_root:
            continue
        stats[_STAT_KEYS[decision.action]] += 1
    return stats


def create_empty_stats() -> dict:
    """Create an empty statistics dictionary.

    Returns:
        Dictionary with zero counts for all stat categories
    """
    stats = {key: 0 for key in _STAT_KEYS.values()}
    stats["errors"] = 0
    return stats
