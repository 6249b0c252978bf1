"""Data models for remote drive objects."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import DriveInvalidResponseError
from .utils import Timestamp, parse_iso_timestamp

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


@dataclass(frozen=True)
class Entry:
    """Immutable snapshot of one remote object's metadata.

    Entries come from a full remote listing or from the change feed and are
    consumed by the reconciler, which merges them into the resource tree.
    """

    self_id: str
    """Unique remote identifier"""

    name: str
    """Display name"""

    parent_ids: frozenset[str] = field(default_factory=frozenset)
    """Identifiers of the parent folders (the API allows several)"""

    filename: str = ""
    """Name used on disk; empty for objects without downloadable content"""

    content_src: str = ""
    """Download location; empty for cloud-only documents"""

    is_folder: bool = False

    is_change: bool = False
    """True if the entry was read from the change feed"""

    modified_time: Timestamp = field(default_factory=Timestamp.epoch)

    change_stamp: int = -1
    """Change feed id this entry was read from, -1 for listings"""

    @property
    def parent_id(self) -> str:
        """The single parent identifier, or "" if there is not exactly one."""
        if len(self.parent_ids) != 1:
            return ""
        return next(iter(self.parent_ids))

    @classmethod
    def from_api_response(
        cls,
        item: dict[str, Any],
        is_change: bool = False,
        change_stamp: int = -1,
    ) -> "Entry":
        """Create an Entry from a remote "file" resource.

        Args:
            item: File resource as returned by the API
            is_change: Whether the item was read from the change feed
            change_stamp: Change id for change feed items

        Returns:
            Entry instance

        Raises:
            DriveInvalidResponseError: If the item has no id
        """
        if not isinstance(item, dict) or not item.get("id"):
            raise DriveInvalidResponseError(f"File resource without id: {item!r}")

        is_folder = item.get("mimeType") == FOLDER_MIME_TYPE
        title = item.get("title") or item.get("originalFilename") or ""
        content_src = "" if is_folder else (item.get("downloadUrl") or "")

        # Native documents have no byte content and therefore no file on disk
        filename = title if (is_folder or content_src) else ""

        parent_ids = frozenset(
            parent["id"]
            for parent in item.get("parents") or []
            if isinstance(parent, dict) and parent.get("id")
        )

        return cls(
            self_id=item["id"],
            name=title,
            parent_ids=parent_ids,
            filename=filename,
            content_src=content_src,
            is_folder=is_folder,
            is_change=is_change,
            modified_time=parse_iso_timestamp(item.get("modifiedDate"))
            or Timestamp.epoch(),
            change_stamp=change_stamp,
        )

    @classmethod
    def from_change(cls, change: dict[str, Any]) -> Optional["Entry"]:
        """Create an Entry from a change feed item.

        Args:
            change: Change resource with "id" and an optional "file" member

        Returns:
            Entry flagged as a change, or None if the change carries no file
            (a permanent deletion) or the file is in the trash
        """
        item = change.get("file")
        if not item or change.get("deleted"):
            return None
        # trashed objects are absent from the full listing as well
        if (item.get("labels") or {}).get("trashed"):
            return None

        try:
            stamp = int(change.get("id", -1))
        except (TypeError, ValueError):
            stamp = -1

        return cls.from_api_response(item, is_change=True, change_stamp=stamp)
