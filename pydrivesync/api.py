"""API client for the remote drive."""

from __future__ import annotations

import json
import logging
import mimetypes
import random
import time
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx

from .config import config
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
    DriveUploadError,
)
from .models import FOLDER_MIME_TYPE, Entry

logger = logging.getLogger(__name__)


class DriveClient:
    """Client for the remote drive REST API.

    Implements ``RemoteClientProtocol``: a paginated listing of every
    object, the change feed, and the transfer calls used by the sync
    engine.
    """

    def __init__(
        self,
        access_token: str | None = None,
        api_url: str | None = None,
        upload_url: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        page_size: int = 1000,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the API client.

        Args:
            access_token: OAuth access token (uses config if not provided)
            api_url: Base URL of the metadata API (uses config if not provided)
            upload_url: Base URL of the upload API (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            page_size: Number of items requested per listing page
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``)

        Raises:
            DriveConfigError: If no access token is available
        """
        self.access_token = access_token or config.access_token
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.upload_url = (upload_url or config.upload_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.page_size = page_size
        self._transport = transport

        if not self.access_token:
            raise DriveConfigError(
                "Access token not configured. Please set "
                "PYDRIVESYNC_ACCESS_TOKEN or run 'pydrivesync init'."
            )

        self._client: httpx.Client | None = None

    def __enter__(self) -> DriveClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False
        return isinstance(exception, (DriveNetworkError, DriveRateLimitError))

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise DriveAuthenticationError(
                "Invalid access token or unauthorized access"
            ) from e
        elif status_code == 403:
            # The API reports per-user rate limits as 403
            if self._error_reason(e.response) in (
                "rateLimitExceeded",
                "userRateLimitExceeded",
            ):
                error = DriveRateLimitError("Rate limit exceeded")
                return (error, attempt < self.max_retries)
            raise DrivePermissionError(
                "Access forbidden - check your permissions"
            ) from e
        elif status_code == 404:
            raise DriveNotFoundError("Resource not found") from e
        elif status_code == 429:
            error = DriveRateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"
        message = self._error_message(e.response)
        if message:
            error_msg = f"{error_msg}: {message}"

        error = DriveAPIError(error_msg)
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (error, should_retry)

    @staticmethod
    def _error_body(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json() if response.content else {}
        except ValueError:
            return {}
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            return data["error"]
        return {}

    def _error_message(self, response: httpx.Response) -> str:
        return str(self._error_body(response).get("message") or "")

    def _error_reason(self, response: httpx.Response) -> str:
        errors = self._error_body(response).get("errors") or []
        if errors and isinstance(errors[0], dict):
            return str(errors[0].get("reason") or "")
        return ""

    def _request(
        self,
        method: str,
        endpoint: str,
        base_url: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            base_url: Base URL to use instead of the metadata API URL
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            DriveAPIError: If the request fails after all retries
        """
        url = f"{base_url or self.api_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    raise DriveInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise DriveInvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if (
                        isinstance(error, DriveRateLimitError)
                        and retry_after
                        and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        f"{method} {endpoint} failed ({error}), "
                        f"retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except DriveAPIError:
                raise
            except httpx.RequestError as e:
                error = DriveNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"{method} {endpoint}: {error}, retrying")
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise DriveAPIError("Request failed after all retry attempts")

    # =========================
    # Listings
    # =========================

    def get_about(self) -> dict[str, Any]:
        """Get account information.

        Returns:
            Dictionary with at least "rootFolderId" and "largestChangeId"
        """
        return self._request("GET", "/about")

    def _iter_pages(
        self, endpoint: str, params: dict[str, Any]
    ) -> Iterator[dict[str, Any]]:
        page_token: str | None = None
        while True:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token
            data = self._request("GET", endpoint, params=page_params)
            if not isinstance(data, dict):
                raise DriveInvalidResponseError(f"Unexpected page: {data!r}")

            yield from data.get("items") or []

            page_token = data.get("nextPageToken")
            if not page_token:
                return

    def iter_entries(self) -> Iterator[Entry]:
        """Yield every non-trashed remote object.

        Yields:
            Entry for each object of the full listing
        """
        params = {"maxResults": self.page_size, "q": "trashed = false"}
        count = 0
        for item in self._iter_pages("/files", params):
            count += 1
            yield Entry.from_api_response(item)
        logger.debug(f"Listed {count} remote entries")

    def iter_changes(self, start_change_id: int) -> Iterator[Entry]:
        """Yield change feed entries starting at ``start_change_id``.

        Changes that carry no file (permanent deletions) are skipped.

        Args:
            start_change_id: First change id to read

        Yields:
            Entry flagged as a change for each changed object
        """
        params = {
            "maxResults": self.page_size,
            "startChangeId": start_change_id,
            "includeSubscribed": "true",
        }
        for item in self._iter_pages("/changes", params):
            entry = Entry.from_change(item)
            if entry is not None:
                yield entry

    # =========================
    # Transfers
    # =========================

    def create_folder(self, name: str, parent_id: str) -> Entry:
        """Create a folder.

        Args:
            name: Folder name
            parent_id: Remote identifier of the parent folder

        Returns:
            Entry of the new folder
        """
        data = self._request(
            "POST",
            "/files",
            json={
                "title": name,
                "mimeType": FOLDER_MIME_TYPE,
                "parents": [{"id": parent_id}],
            },
        )
        return Entry.from_api_response(data)

    def upload_file(
        self,
        local_path: Path,
        parent_id: str,
        name: str,
        existing_id: str | None = None,
    ) -> Entry:
        """Upload a file using a multipart request.

        Args:
            local_path: File to upload
            parent_id: Remote identifier of the parent folder
            name: Remote file name
            existing_id: Update the content of this object instead of
                creating a new one

        Returns:
            Entry of the uploaded file

        Raises:
            DriveUploadError: If the local file cannot be read or the
                upload is rejected
        """
        try:
            content = Path(local_path).read_bytes()
        except OSError as e:
            raise DriveUploadError(f"Failed to read {local_path}: {e}") from e

        mime_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
        metadata = {
            "title": name,
            "mimeType": mime_type,
            "parents": [{"id": parent_id}],
        }
        boundary = uuid.uuid4().hex
        body = b"".join(
            [
                f"--{boundary}\r\n".encode(),
                b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
                json.dumps(metadata).encode("utf-8"),
                f"\r\n--{boundary}\r\n".encode(),
                f"Content-Type: {mime_type}\r\n\r\n".encode(),
                content,
                f"\r\n--{boundary}--\r\n".encode(),
            ]
        )

        if existing_id:
            method, endpoint = "PUT", f"/files/{existing_id}"
        else:
            method, endpoint = "POST", "/files"

        try:
            data = self._request(
                method,
                endpoint,
                base_url=self.upload_url,
                params={"uploadType": "multipart"},
                content=body,
                headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            )
        except (DriveAuthenticationError, DriveNetworkError):
            raise
        except DriveAPIError as e:
            raise DriveUploadError(f"Upload of {name} failed: {e}") from e
        return Entry.from_api_response(data)

    def download_file(self, content_src: str, output_path: Path) -> Path:
        """Download file content to ``output_path``.

        Args:
            content_src: Download URL of the file
            output_path: Where to save the content

        Returns:
            Path where the file was saved

        Raises:
            DriveDownloadError: If the download fails
            DriveNetworkError: On transport failures
        """
        client = self._get_client()
        output_path = Path(output_path)

        try:
            with client.stream("GET", content_src) as response:
                response.raise_for_status()
                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        if chunk:
                            f.write(chunk)
            return output_path

        except httpx.HTTPStatusError as e:
            raise DriveDownloadError(f"Download failed: {e}") from e
        except httpx.RequestError as e:
            raise DriveNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            raise DriveDownloadError(f"Failed to write file: {e}") from e

    def trash(self, remote_id: str) -> None:
        """Move a remote object to the trash."""
        self._request("POST", f"/files/{remote_id}/trash")

    def rename(self, remote_id: str, new_name: str, new_parent_id: str) -> Entry:
        """Rename and/or move a remote object.

        Args:
            remote_id: Object to rename
            new_name: New title
            new_parent_id: Remote identifier of the new parent folder

        Returns:
            Entry of the renamed object
        """
        data = self._request(
            "PATCH",
            f"/files/{remote_id}",
            json={"title": new_name, "parents": [{"id": new_parent_id}]},
        )
        return Entry.from_api_response(data)
