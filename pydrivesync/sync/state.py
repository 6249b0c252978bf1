"""Sync state: reconciliation of the local and remote trees.

This module holds the per-run ``SyncState``. It builds the resource tree
from the local directory, merges remote entries from listings and the
change feed, resolves entries whose parent was not known yet, drives the
transfer pass and persists the two sync watermarks (last sync time and
change feed cursor) so the next run can work incrementally.
"""

import json
import logging
import os
import stat
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any, Optional, Union

from ..config import SyncOptions
from ..exceptions import ResourceNotFoundError
from ..models import Entry
from ..utils import Timestamp
from .ignore import IgnorePattern
from .resource import Resource, ResourceKind
from .tree import ResourceTree

if TYPE_CHECKING:
    from ..protocols import Syncer

logger = logging.getLogger(__name__)


@dataclass
class Watermarks:
    """The two values persisted between sync runs."""

    last_sync: Timestamp = field(default_factory=Timestamp.epoch)
    """Remote entries older than this are assumed to be reconciled"""

    change_stamp: Optional[int] = None
    """Change feed cursor; None until the first successful listing"""

    def to_dict(self) -> dict:
        """Convert watermarks to a dictionary for JSON serialization."""
        return {
            "last_sync": {"sec": self.last_sync.sec, "nsec": self.last_sync.nsec},
            "change_stamp": -1 if self.change_stamp is None else self.change_stamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Watermarks":
        """Create Watermarks from a dictionary.

        Raises:
            KeyError: If a field is missing
            TypeError: If a field has the wrong type
            ValueError: If a value is out of range
        """
        last_sync = data["last_sync"]
        sec = last_sync["sec"]
        nsec = last_sync["nsec"]
        stamp = data["change_stamp"]

        for name, value in (("sec", sec), ("nsec", nsec), ("change_stamp", stamp)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be an integer, got {value!r}")

        return cls(
            last_sync=Timestamp(sec, nsec),
            change_stamp=stamp if stamp >= 0 else None,
        )


def load_watermarks(path: Path) -> Watermarks:
    """Load watermarks from a state file.

    A missing or malformed file yields the defaults (epoch watermark,
    undefined change stamp), which forces a full remote re-evaluation.

    Args:
        path: State file path

    Returns:
        Watermarks read from the file, or defaults
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        watermarks = Watermarks.from_dict(data)
    except FileNotFoundError:
        logger.debug(f"No sync state found at {path}")
        return Watermarks()
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Failed to load sync state from {path}, starting over: {e}")
        return Watermarks()

    logger.debug(
        f"Loaded sync state: last sync {watermarks.last_sync}, "
        f"change stamp {watermarks.change_stamp}"
    )
    return watermarks


def save_watermarks(path: Path, watermarks: Watermarks) -> None:
    """Write watermarks to a state file.

    Raises:
        OSError: If the file cannot be written
    """
    with open(path, "w", encoding="utf-8") as f:
        json.dump(watermarks.to_dict(), f, indent=2)
    logger.debug(f"Saved sync state to {path}")


class MergeOutcome(str, Enum):
    """Result of merging one remote entry into the tree."""

    MERGED = "merged"
    """Attributes were merged into an existing or new resource"""

    IGNORED = "ignored"
    """The path matches the ignore pattern"""

    SKIPPED = "skipped"
    """Policy skip: scope restriction or unsupported entry shape"""

    DEFERRED = "deferred"
    """Parent not known yet; queued for resolution"""

    DROPPED = "dropped"
    """Change feed entry for an object that is not in the tree"""


class SyncState:
    """Reconciles local and remote state for one sync run.

    Examples:
        >>> state = SyncState(root / ".pydrivesync_state", SyncOptions())
        >>> state.from_local(root)
        >>> state.merge(client.iter_entries())
        >>> orphans = state.resolve_entries()
        >>> state.sync(engine)
        >>> state.write()
    """

    def __init__(
        self,
        state_file: Optional[Path] = None,
        options: Optional[SyncOptions] = None,
    ):
        """Initialize sync state.

        Args:
            state_file: File holding the persisted watermarks; read at once
                if given
            options: Run options (root label, scope restriction, extra
                ignore pattern, force)
        """
        self.options = options or SyncOptions()
        self.state_file = state_file
        self._tree = ResourceTree(self.options.path)
        self._dir = self.options.dir or None
        self._ignore = IgnorePattern.build(self.options.ignore)
        self._watermarks = Watermarks()
        self.unresolved: list[Entry] = []
        self._orphaned: list[Entry] = []

        if state_file is not None:
            self.read(state_file)

        # "force" makes every remote entry look newer than the last sync
        if self.options.force:
            self._watermarks.last_sync = Timestamp.epoch()

        logger.debug(f"last sync time: {self.last_sync}")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def tree(self) -> ResourceTree:
        return self._tree

    @property
    def ignore(self) -> IgnorePattern:
        return self._ignore

    @property
    def restrict_to_dir(self) -> Optional[str]:
        return self._dir

    @property
    def last_sync(self) -> Timestamp:
        return self._watermarks.last_sync

    @last_sync.setter
    def last_sync(self, value: Timestamp) -> None:
        self._watermarks.last_sync = value

    @property
    def change_stamp(self) -> Optional[int]:
        return self._watermarks.change_stamp

    @change_stamp.setter
    def change_stamp(self, value: Optional[int]) -> None:
        logger.debug(f"change stamp is set to {value}")
        self._watermarks.change_stamp = value

    @property
    def watermarks(self) -> Watermarks:
        return Watermarks(self.last_sync, self.change_stamp)

    @property
    def orphaned(self) -> list[Entry]:
        """Entries left unresolved by the last call to ``resolve_entries``."""
        return list(self._orphaned)

    def is_ignored(self, rel_path: str) -> bool:
        return self._ignore.is_ignored(rel_path)

    def find_by_remote_id(self, remote_id: str) -> Optional[Resource]:
        return self._tree.find_by_remote_id(remote_id)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._tree)

    # ------------------------------------------------------------------
    # Local tree
    # ------------------------------------------------------------------

    def from_local(self, root_dir: Union[str, Path]) -> None:
        """Mirror the local directory onto the resource tree.

        Existing resources are reused, new ones are created; nothing is
        removed. Ignored paths, entries outside the restricted directory and
        broken symbolic links are skipped.

        Args:
            root_dir: Local directory that corresponds to the tree root

        Raises:
            OSError: If a directory cannot be listed or an entry stat'ed
        """
        self._from_local(Path(root_dir), self._tree.root)

    def _from_local(self, directory: Path, folder: Resource) -> None:
        folder.from_local(directory, self.last_sync)

        for item in sorted(directory.iterdir(), key=lambda p: p.name):
            fname = item.name
            path = folder.child_rel_path(fname)

            if self.is_ignored(path):
                logger.debug(f"file {path} is ignored")
                continue

            if folder.is_root and self._dir and fname != self._dir:
                logger.debug(f"{fname} is outside {self._dir}, ignored")
                continue

            try:
                st = item.stat()
            except FileNotFoundError:
                logger.debug(f"file {item} doesn't exist (broken link?), ignored")
                continue

            is_dir = stat.S_ISDIR(st.st_mode)
            kind = ResourceKind.FOLDER if is_dir else ResourceKind.FILE

            child = folder.find_child(fname)
            if child is None:
                child = Resource(fname, kind)
                folder.add_child(child)
                self._tree.insert(child)
            elif child.kind != kind:
                logger.warning(
                    f"{path} is a {kind.value} locally but a "
                    f"{child.kind.value} in the tree, ignored"
                )
                continue

            if is_dir:
                self._from_local(item, child)
            else:
                child.from_local(item, self.last_sync)

    # ------------------------------------------------------------------
    # Remote merge
    # ------------------------------------------------------------------

    def from_remote(self, entry: Entry) -> MergeOutcome:
        """Merge one remote entry into the tree.

        Args:
            entry: Entry from a listing or the change feed

        Returns:
            What happened to the entry. ``DEFERRED`` entries are appended to
            ``unresolved``.
        """
        kind = "folder" if entry.is_folder else "file"
        root = self._tree.root

        if root.remote_id in entry.parent_ids and self._dir and entry.name != self._dir:
            logger.debug(f"{kind} {entry.name} is outside {self._dir}, ignored")
            return MergeOutcome.SKIPPED

        if not entry.is_folder and (not entry.filename or not entry.content_src):
            logger.debug(f'{kind} "{entry.name}" is a remote document, ignored')
            return MergeOutcome.SKIPPED

        if "/" in entry.name or "/" in entry.filename:
            logger.debug(f'{kind} "{entry.name}" contains a slash in its name, ignored')
            return MergeOutcome.SKIPPED

        if not entry.is_change and len(entry.parent_ids) != 1:
            logger.debug(
                f'{kind} "{entry.name}" has {len(entry.parent_ids)} parents, ignored'
            )
            return MergeOutcome.SKIPPED

        if entry.is_change:
            return self.from_change(entry)

        outcome = self._update(entry)
        if outcome == MergeOutcome.DEFERRED:
            self.unresolved.append(entry)
        return outcome

    def from_change(self, entry: Entry) -> MergeOutcome:
        """Merge a change feed entry.

        Change feed entries are looked up by remote identifier only and are
        always treated as newer than anything recorded locally, so they are
        merged against the epoch instead of the last sync time.
        """
        res = self._tree.find_by_remote_id(entry.self_id)
        if res is None:
            logger.debug(f"change for unknown {entry.self_id} ({entry.name}), dropped")
            return MergeOutcome.DROPPED

        self._tree.update(res, entry, Timestamp.epoch())
        return MergeOutcome.MERGED

    def update(self, entry: Entry) -> bool:
        """Try to place an ordinary entry in the tree.

        Returns:
            False if the entry's parent is not in the tree yet, True if the
            entry was handled (merged, ignored or skipped)
        """
        return self._update(entry) != MergeOutcome.DEFERRED

    def _update(self, entry: Entry) -> MergeOutcome:
        res = self._tree.find_by_remote_id(entry.self_id)
        if res is not None:
            path = res.rel_path
            if self.is_ignored(path):
                logger.debug(f"{path} is ignored")
                return MergeOutcome.IGNORED
            self._tree.update(res, entry, self.last_sync)
            return MergeOutcome.MERGED

        parent = self._tree.find_by_remote_id(entry.parent_id)
        if parent is None:
            return MergeOutcome.DEFERRED

        if not parent.is_folder:
            logger.debug(f"parent of {entry.name} is not a folder, ignored")
            return MergeOutcome.SKIPPED

        path = parent.child_rel_path(entry.name)
        if self.is_ignored(path):
            logger.debug(f"{path} is ignored")
            return MergeOutcome.IGNORED

        # the entry may already exist locally
        child = parent.find_child(entry.name)
        if child is not None:
            self._tree.update(child, entry, self.last_sync)
            return MergeOutcome.MERGED

        if entry.is_folder or entry.filename:
            kind = ResourceKind.FOLDER if entry.is_folder else ResourceKind.FILE
            child = Resource(entry.name, kind)
            parent.add_child(child)
            self._tree.insert(child)
            self._tree.update(child, entry, self.last_sync)
            return MergeOutcome.MERGED

        return MergeOutcome.SKIPPED

    def merge(self, entries: Iterable[Entry]) -> dict[MergeOutcome, int]:
        """Merge a sequence of remote entries.

        Args:
            entries: Entries from a listing or the change feed

        Returns:
            Number of entries per outcome
        """
        counts = {outcome: 0 for outcome in MergeOutcome}
        for entry in entries:
            counts[self.from_remote(entry)] += 1
        logger.debug(
            "merged remote entries: "
            + ", ".join(f"{k.value}={v}" for k, v in counts.items() if v)
        )
        return counts

    # ------------------------------------------------------------------
    # Unresolved entries
    # ------------------------------------------------------------------

    def try_resolve_entries(self) -> int:
        """Scan the unresolved queue once.

        Returns:
            Number of entries that could be placed and were removed
        """
        remaining: list[Entry] = []
        count = 0
        for entry in self.unresolved:
            if self.update(entry):
                count += 1
            else:
                remaining.append(entry)
        self.unresolved[:] = remaining
        return count

    def resolve_entries(self) -> list[Entry]:
        """Resolve queued entries until a full scan makes no progress.

        Returns:
            Entries that could not be placed (orphans); they stay queued
        """
        while self.unresolved:
            if self.try_resolve_entries() == 0:
                break

        self._orphaned = list(self.unresolved)
        if self._orphaned:
            logger.warning(
                f"{len(self._orphaned)} remote entries have no known parent "
                "and were not synced"
            )
            for entry in self._orphaned:
                logger.debug(f"orphaned entry {entry.self_id} ({entry.name})")
        return list(self._orphaned)

    # ------------------------------------------------------------------
    # Transfer pass
    # ------------------------------------------------------------------

    def sync(
        self, syncer: "Syncer", options: Optional[SyncOptions] = None
    ) -> Timestamp:
        """Run the transfer pass and advance the watermark.

        The syncer returns the watermark it reached. If it is unchanged,
        nothing advanced it and the local clock is used instead; otherwise
        the server-issued value is kept. If any transfer failed the
        watermark stays where it was, so the next run sees the failed
        items in the same state again.

        Args:
            syncer: Transfer collaborator
            options: Run options (defaults to the options of this state)

        Returns:
            The new last sync time
        """
        before = self.last_sync
        after = syncer.sync(self._tree.root, before, options or self.options)

        if syncer.error_count:
            logger.warning(
                f"{syncer.error_count} transfer(s) failed, "
                f"last sync time stays at {before}"
            )
        elif after == before:
            logger.debug(f"nothing changed? {before}")
            self.last_sync = Timestamp.now()
        else:
            logger.debug(f"updating last sync: {after}")
            self.last_sync = after
        return self.last_sync

    def rename(
        self,
        syncer: "Syncer",
        old_path: Union[str, Path],
        new_path: Union[str, Path],
        root_dir: Union[str, Path] = ".",
    ) -> Resource:
        """Rename a local file and let the syncer rename the remote object.

        Not transactional: if the remote rename fails, the local rename has
        already happened and the next sync reconciles the difference.

        Args:
            syncer: Transfer collaborator
            old_path: Current path, relative to ``root_dir``
            new_path: New path, relative to ``root_dir``
            root_dir: Local directory of the tree root

        Returns:
            The renamed resource

        Raises:
            ResourceNotFoundError: If ``old_path`` is not in the tree
            OSError: If the local rename fails
        """
        res = self._tree.root
        for part in PurePath(old_path).parts:
            if part in (".", ""):
                continue
            child = res.find_child(part)
            if child is None:
                raise ResourceNotFoundError(str(old_path))
            res = child

        if res.is_root:
            raise ResourceNotFoundError(str(old_path))

        root = Path(root_dir)
        os.rename(root / old_path, root / new_path)
        syncer.rename(res, Path(new_path))
        return res

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def read(self, path: Path) -> None:
        """Load the watermarks; falls back to defaults on any problem."""
        self._watermarks = load_watermarks(path)

    def write(self, path: Optional[Path] = None) -> None:
        """Persist the watermarks.

        Raises:
            ValueError: If no path is given and the state has no state file
            OSError: If the file cannot be written
        """
        path = path or self.state_file
        if path is None:
            raise ValueError("No state file configured")
        save_watermarks(path, self._watermarks)

    def to_dict(self) -> dict[str, Any]:
        return self._watermarks.to_dict()
