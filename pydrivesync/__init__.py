"""pydrivesync - two-way sync of a local directory with a remote drive."""

from .api import DriveClient
from .config import SyncOptions
from .drive import Drive, RunResult
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveDownloadError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
    DriveSyncError,
    DriveUploadError,
    ResourceNotFoundError,
)
from .models import Entry
from .utils import Timestamp

__all__ = [
    "DriveClient",
    "Drive",
    "RunResult",
    "SyncOptions",
    "Entry",
    "Timestamp",
    "DriveSyncError",
    "DriveAPIError",
    "DriveAuthenticationError",
    "DriveConfigError",
    "DriveDownloadError",
    "DriveInvalidResponseError",
    "DriveNetworkError",
    "DriveNotFoundError",
    "DrivePermissionError",
    "DriveRateLimitError",
    "DriveUploadError",
    "ResourceNotFoundError",
]
