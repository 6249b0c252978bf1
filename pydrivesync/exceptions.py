"""Exception hierarchy for pydrivesync."""


class DriveSyncError(Exception):
    """Base exception for all pydrivesync errors."""


class DriveConfigError(DriveSyncError):
    """Configuration is missing or invalid."""


class ResourceNotFoundError(DriveSyncError):
    """A path could not be located in the resource tree."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No resource found for path: {path}")


class DriveAPIError(DriveSyncError):
    """The remote API returned an error or could not be reached."""


class DriveAuthenticationError(DriveAPIError):
    """The access token was rejected."""


class DrivePermissionError(DriveAPIError):
    """The access token lacks permission for the request."""


class DriveNotFoundError(DriveAPIError):
    """The requested remote object does not exist."""


class DriveRateLimitError(DriveAPIError):
    """The API rate limit was exceeded."""


class DriveNetworkError(DriveAPIError):
    """A transport level failure occurred."""


class DriveInvalidResponseError(DriveAPIError):
    """The API returned a payload that could not be understood."""


class DriveUploadError(DriveAPIError):
    """Uploading a file failed."""


class DriveDownloadError(DriveAPIError):
    """Downloading a file failed."""
