"""Sync engine that transfers the out-of-sync parts of a resource tree."""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Optional

from rich.progress import Progress

from ..config import SyncOptions
from ..exceptions import DriveSyncError
from ..models import Entry
from ..output import OutputFormatter
from ..protocols import RemoteClientProtocol
from ..utils import Timestamp
from .comparator import (
    ResourceComparator,
    SyncAction,
    SyncDecision,
    categorize_decisions,
    create_empty_stats,
)
from .operations import SyncOperations
from .resource import Resource, ResourceState
from .tree import ResourceTree

logger = logging.getLogger(__name__)


class SyncEngine:
    """Executes sync decisions against the local disk and the remote side.

    Implements the ``Syncer`` protocol used by ``SyncState``. Folder
    operations always run on the calling thread, in tree order, so that a
    folder exists on both sides before anything inside it is transferred.
    File transfers run in a thread pool when ``max_workers`` is above one.
    Results are applied to the tree on the calling thread only.
    """

    def __init__(
        self,
        client: RemoteClientProtocol,
        root_dir: Path,
        output: Optional[OutputFormatter] = None,
        tree: Optional[ResourceTree] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Remote API client
            root_dir: Local directory of the tree root
            output: Output formatter for displaying progress/status
            tree: Tree whose identifier index is kept current when uploads
                assign new remote identifiers
        """
        self.client = client
        self.root_dir = Path(root_dir)
        self.output = output or OutputFormatter()
        self.tree = tree
        self.operations = SyncOperations(client, self.root_dir)
        self.stats: dict = create_empty_stats()

    @property
    def error_count(self) -> int:
        return self.stats["errors"]

    def sync(
        self, root: Resource, last_sync: Timestamp, options: SyncOptions
    ) -> Timestamp:
        """Transfer everything below ``root`` that is out of sync.

        Args:
            root: Root of the subtree to process
            last_sync: Watermark before the pass
            options: Run options

        Returns:
            The highest server modification time of the uploads, or
            ``last_sync`` if no upload raised it
        """
        comparator = ResourceComparator.from_options(options)
        decisions = comparator.compare_tree(root)

        self.stats = categorize_decisions(decisions)
        self._display_sync_plan(self.stats, options.dry_run)

        if options.dry_run:
            self._display_decisions(decisions)
            if not self.output.quiet:
                self._display_summary(self.stats, dry_run=True)
            return last_sync

        actionable = [d for d in decisions if d.action != SyncAction.SKIP]
        watermark = last_sync
        if actionable:
            watermark = self._execute_decisions(
                actionable, last_sync, options.max_workers
            )

        if not self.output.quiet:
            self._display_summary(self.stats, dry_run=False)
        return watermark

    def rename(self, resource: Resource, new_path: Path) -> None:
        """Rename the remote object of ``resource`` to match ``new_path``.

        Args:
            resource: Resource that was renamed locally
            new_path: New path relative to the root

        Raises:
            DriveSyncError: If the new parent folder is unknown remotely
        """
        if not resource.remote_id:
            logger.info(
                f"{resource.rel_path} does not exist remotely, nothing to rename"
            )
            return

        new_parent = self._find_folder(resource, Path(new_path).parent)
        if new_parent is None or not new_parent.remote_id:
            raise DriveSyncError(
                f"Target folder of {new_path} does not exist remotely"
            )

        entry = self.client.rename(
            resource.remote_id, Path(new_path).name, new_parent.remote_id
        )
        logger.debug(f"Renamed {resource.rel_path} to {new_path} ({entry.self_id})")

    @staticmethod
    def _find_folder(resource: Resource, rel_dir: Path) -> Optional[Resource]:
        root = resource
        while root.parent is not None:
            root = root.parent

        node: Optional[Resource] = root
        for part in rel_dir.parts:
            if part in (".", ""):
                continue
            if node is None:
                return None
            node = node.find_child(part)
        if node is None or not node.is_folder:
            return None
        return node

    def _display_sync_plan(self, stats: dict, dry_run: bool) -> None:
        if self.output.quiet:
            return

        if dry_run:
            self.output.info("Dry run: No changes will be made")
        self.output.info("Sync plan:")
        if stats["uploads"] > 0:
            self.output.info(f"  ↑ Upload: {stats['uploads']} item(s)")
        if stats["downloads"] > 0:
            self.output.info(f"  ↓ Download: {stats['downloads']} item(s)")
        if stats["deletes_local"] > 0:
            self.output.info(f"  ✗ Delete local: {stats['deletes_local']} item(s)")
        if stats["deletes_remote"] > 0:
            self.output.info(
                f"  ✗ Delete remote: {stats['deletes_remote']} item(s)"
            )
        if stats["skips"] > 0:
            self.output.info(f"  = Skip: {stats['skips']} item(s)")
        self.output.print("")

    def _display_decisions(self, decisions: list[SyncDecision]) -> None:
        if self.output.quiet:
            return
        for decision in decisions:
            if decision.action == SyncAction.SKIP:
                continue
            self.output.info(
                f"  {decision.action.value}: {decision.relative_path} "
                f"({decision.reason})"
            )

    def _execute_decisions(
        self,
        decisions: list[SyncDecision],
        last_sync: Timestamp,
        max_workers: int,
    ) -> Timestamp:
        """Execute decisions and apply their results to the tree.

        Args:
            decisions: Actionable decisions in tree order
            last_sync: Watermark before the pass
            max_workers: Number of parallel file transfers

        Returns:
            The watermark after the pass
        """
        watermark = last_sync
        executor: Optional[ThreadPoolExecutor] = None
        if max_workers > 1:
            logger.debug(
                f"Executing {len(decisions)} actions with {max_workers} workers"
            )
            executor = ThreadPoolExecutor(max_workers=max_workers)

        progress: Optional[Progress] = None
        task = None
        if not self.output.quiet:
            progress = Progress(transient=True)
            progress.start()
            task = progress.add_task("Syncing...", total=len(decisions))

        futures: dict[Future, SyncDecision] = {}
        failed: list[Resource] = []
        try:
            for decision in decisions:
                if self._below_failed_folder(decision.resource, failed):
                    self._record_failure(
                        decision, DriveSyncError("Parent folder failed to sync")
                    )
                elif executor is None or decision.resource.is_folder:
                    watermark = self._run_and_apply(decision, watermark, failed)
                else:
                    futures[executor.submit(self._timed, decision)] = decision
                    continue

                if progress is not None and task is not None:
                    progress.update(task, advance=1)

            for future in as_completed(futures):
                decision = futures[future]
                try:
                    result, elapsed = future.result()
                except Exception as e:
                    self._record_failure(decision, e)
                else:
                    logger.debug(
                        f"Completed {decision.relative_path} in {elapsed:.2f}s"
                    )
                    watermark = self._apply_result(decision, result, watermark)
                if progress is not None and task is not None:
                    progress.update(task, advance=1)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)
            if progress is not None:
                progress.stop()

        return watermark

    @staticmethod
    def _below_failed_folder(resource: Resource, failed: list[Resource]) -> bool:
        node = resource.parent
        while node is not None:
            if any(node is f for f in failed):
                return True
            node = node.parent
        return False

    def _run_and_apply(
        self,
        decision: SyncDecision,
        watermark: Timestamp,
        failed: list[Resource],
    ) -> Timestamp:
        try:
            result, elapsed = self._timed(decision)
        except Exception as e:
            self._record_failure(decision, e)
            if decision.resource.is_folder:
                failed.append(decision.resource)
            return watermark

        logger.debug(f"Completed {decision.relative_path} in {elapsed:.2f}s")
        return self._apply_result(decision, result, watermark)

    def _timed(self, decision: SyncDecision) -> tuple[Any, float]:
        start = time.time()
        result = self._execute_single_decision(decision)
        return result, time.time() - start

    def _execute_single_decision(self, decision: SyncDecision) -> Any:
        """Execute a single decision without touching the tree.

        Args:
            decision: Sync decision to execute

        Returns:
            The Entry of an upload, or None for other actions
        """
        resource = decision.resource
        if decision.action == SyncAction.UPLOAD:
            return self.operations.upload(resource)
        if decision.action == SyncAction.DOWNLOAD:
            self.operations.download(resource)
        elif decision.action == SyncAction.DELETE_LOCAL:
            self.operations.delete_local(resource)
        elif decision.action == SyncAction.DELETE_REMOTE:
            self.operations.delete_remote(resource)
        return None

    def _apply_result(
        self, decision: SyncDecision, result: Any, watermark: Timestamp
    ) -> Timestamp:
        """Record a successful action in the tree and return the new watermark."""
        resource = decision.resource

        if decision.action == SyncAction.UPLOAD and isinstance(result, Entry):
            resource.remote_id = result.self_id
            if result.parent_id:
                resource.parent_id = result.parent_id
            resource.remote_mtime = result.modified_time
            resource.content_src = result.content_src
            if not resource.is_folder:
                resource.local_mtime = result.modified_time
            resource.state = ResourceState.SYNC
            if self.tree is not None:
                self.tree.insert(resource)
            if result.modified_time > watermark:
                watermark = result.modified_time
        elif decision.action == SyncAction.DOWNLOAD:
            resource.seen_at = Timestamp.now()
            resource.local_mtime = resource.remote_mtime
            resource.state = ResourceState.SYNC
        elif decision.action == SyncAction.DELETE_LOCAL:
            resource.seen_at = None

        return watermark

    def _record_failure(self, decision: SyncDecision, error: Exception) -> None:
        logger.debug(f"Failed {decision.relative_path}: {error}")
        self.stats["errors"] += 1
        self.output.error(f"Error syncing {decision.relative_path}: {error}")

    def _display_summary(self, stats: dict, dry_run: bool) -> None:
        """Display sync summary.

        Args:
            stats: Statistics dictionary
            dry_run: Whether this was a dry run
        """
        self.output.print("")
        if dry_run:
            self.output.success("Dry run complete!")
        elif stats["errors"] > 0:
            self.output.warning(f"Sync finished with {stats['errors']} error(s)")
        else:
            self.output.success("Sync complete!")

        total_actions = (
            stats["uploads"]
            + stats["downloads"]
            + stats["deletes_local"]
            + stats["deletes_remote"]
        )

        if total_actions > 0:
            self.output.info(f"Total actions: {total_actions}")
            if stats["uploads"] > 0:
                self.output.info(f"  Uploaded: {stats['uploads']}")
            if stats["downloads"] > 0:
                self.output.info(f"  Downloaded: {stats['downloads']}")
            if stats["deletes_local"] > 0:
                self.output.info(f"  Deleted locally: {stats['deletes_local']}")
            if stats["deletes_remote"] > 0:
                self.output.info(f"  Deleted remotely: {stats['deletes_remote']}")
        else:
            self.output.info("No changes needed - everything is in sync!")
