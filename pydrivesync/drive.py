"""One complete sync run: scan, merge, resolve, transfer, persist."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .config import STATE_FILE_NAME, SyncOptions
from .exceptions import DriveConfigError, DriveInvalidResponseError
from .output import OutputFormatter
from .protocols import RemoteClientProtocol, Syncer
from .sync.engine import SyncEngine
from .sync.resource import Resource
from .sync.state import SyncState
from .utils import Timestamp

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Summary of one sync run."""

    last_sync: Timestamp
    """Watermark after the run"""

    change_stamp: Optional[int]
    """Change feed cursor after the run"""

    outcomes: Counter = field(default_factory=Counter)
    """Number of remote entries per merge outcome"""

    orphaned: int = 0
    """Entries whose parent never appeared"""

    resources: int = 0
    """Number of resources in the merged tree"""

    errors: int = 0
    """Failed transfers; the state file is not updated when non-zero"""

    options: Optional[SyncOptions] = None
    """Options the run was performed with"""

    def to_dict(self) -> dict:
        return {
            "last_sync": self.last_sync.isoformat(),
            "change_stamp": self.change_stamp,
            "outcomes": {o.value: n for o, n in sorted(self.outcomes.items())},
            "orphaned": self.orphaned,
            "resources": self.resources,
            "errors": self.errors,
            "options": self.options.to_dict() if self.options else None,
        }


class Drive:
    """Ties the reconciler to a remote client and a transfer engine."""

    def __init__(
        self,
        client: RemoteClientProtocol,
        root_dir: Union[str, Path],
        options: Optional[SyncOptions] = None,
        syncer: Optional[Syncer] = None,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize a drive.

        Args:
            client: Remote API client
            root_dir: Local directory to synchronize
            options: Run options
            syncer: Transfer collaborator; a ``SyncEngine`` by default
            output: Output formatter handed to the default engine
        """
        self.client = client
        self.root_dir = Path(root_dir)
        self.options = options or SyncOptions()
        self.output = output or OutputFormatter()

        if not self.root_dir.is_dir():
            raise DriveConfigError(f"Not a directory: {self.root_dir}")

        self.state = SyncState(self.root_dir / STATE_FILE_NAME, self.options)
        self.syncer: Syncer = syncer or SyncEngine(
            client, self.root_dir, output=self.output, tree=self.state.tree
        )
        self._about: Optional[dict] = None

    @property
    def state_file(self) -> Path:
        return self.root_dir / STATE_FILE_NAME

    def _largest_change_id(self) -> int:
        about = self._about or {}
        try:
            return int(about["largestChangeId"])
        except (KeyError, TypeError, ValueError) as e:
            raise DriveInvalidResponseError(
                f"about response without largestChangeId: {about!r}"
            ) from e

    def build(self) -> Counter:
        """Build the merged tree without transferring anything.

        Returns:
            Number of remote entries per merge outcome
        """
        self._about = self.client.get_about()
        root_id = (self._about or {}).get("rootFolderId")
        if not root_id:
            raise DriveInvalidResponseError(
                f"about response without rootFolderId: {self._about!r}"
            )
        self.state.tree.set_root_remote_id(root_id)

        logger.info(f"Reading local directory {self.root_dir}")
        self.state.from_local(self.root_dir)

        logger.info("Reading remote listing")
        outcomes: Counter = Counter(self.state.merge(self.client.iter_entries()))

        change_stamp = self.state.change_stamp
        if change_stamp is not None and not self.options.force:
            logger.info(f"Reading remote changes since {change_stamp}")
            outcomes.update(
                self.state.merge(self.client.iter_changes(change_stamp + 1))
            )

        orphaned = self.state.resolve_entries()
        if orphaned:
            logger.info(f"{len(orphaned)} entries have no known parent")
        return outcomes

    def run(self) -> RunResult:
        """Perform one sync run.

        Returns:
            RunResult with the new watermarks

        Raises:
            DriveAPIError: If the remote side cannot be read
            OSError: If the state file cannot be written
        """
        outcomes = self.build()
        last_sync = self.state.sync(self.syncer, self.options)
        errors = self.syncer.error_count

        if self.options.dry_run:
            logger.info("Dry run, state file not updated")
        elif errors:
            logger.warning(
                f"{errors} transfer(s) failed, state file not updated; "
                "the next run retries them"
            )
        else:
            self.state.change_stamp = self._largest_change_id()
            self.state.write()

        return RunResult(
            last_sync=last_sync,
            change_stamp=self.state.change_stamp,
            outcomes=outcomes,
            orphaned=len(self.state.orphaned),
            resources=len(self.state.tree),
            errors=errors,
            options=self.options,
        )

    def rename(
        self, old_path: Union[str, Path], new_path: Union[str, Path]
    ) -> Resource:
        """Rename a synced file locally and remotely.

        Args:
            old_path: Current path relative to the root directory
            new_path: New path relative to the root directory

        Returns:
            The renamed resource
        """
        self.build()
        return self.state.rename(self.syncer, old_path, new_path, self.root_dir)
