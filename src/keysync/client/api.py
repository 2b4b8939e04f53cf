"""Remote object store client for keysync.

This module provides:
- RemoteStore: The narrow list/download/upload interface the sync engine consumes
- RemoteFile: Listing entry (name, id, modification stamp)
- DriveClient: httpx client for the Google Drive ``appDataFolder`` space

The store offers no transactions, locks or conditional writes: only opaque
blobs keyed by name plus a server-side modification time.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from keysync.core.crypto import Envelope

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
MULTIPART_BOUNDARY = "---keysync-boundary"


class APIError(Exception):
    """Base exception for remote store errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


@dataclass(frozen=True)
class RemoteFile:
    """Object metadata from the remote store."""

    id: str
    name: str
    modified_time: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFile:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            modified_time=data.get("modifiedTime", ""),
        )


class RemoteStore(Protocol):
    """Interface of the remote object store consumed by the sync engine."""

    def list_files(self) -> list[RemoteFile]:
        """List every object in the store."""
        ...

    def download(self, file_id: str) -> Envelope:
        """Download and parse one envelope."""
        ...

    def upload(self, name: str, envelope: Envelope, existing_id: str | None = None) -> str:
        """Create or overwrite an object, returning its id."""
        ...

    def delete(self, file_id: str) -> None:
        """Delete an object (missing objects are ignored)."""
        ...


class DriveClient:
    """HTTP client for the Google Drive v3 ``appDataFolder`` space.

    Access tokens are obtained by the caller (OAuth is out of scope here).
    """

    def __init__(
        self,
        token: str,
        timeout: float = 30.0,
        api_url: str = DRIVE_API,
        upload_url: str = UPLOAD_API,
    ) -> None:
        """Initialize the Drive client.

        Args:
            token: OAuth bearer token.
            timeout: Request timeout in seconds.
            api_url: Metadata API base URL.
            upload_url: Upload API base URL.
        """
        self._api_url = api_url.rstrip("/")
        self._upload_url = upload_url.rstrip("/")
        self._client = httpx.Client(
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"},
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> DriveClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response, action: str) -> httpx.Response:
        """Raise the appropriate exception for an error response."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError(f"Drive {action} failed: not found", 404)
        if response.status_code >= 400:
            raise APIError(
                f"Drive {action} failed: {response.status_code} {response.text}",
                response.status_code,
            )
        return response

    def list_files(self) -> list[RemoteFile]:
        """List all objects in the application data folder.

        Returns:
            List of object metadata (follows pagination).
        """
        files: list[RemoteFile] = []
        params: dict[str, str] = {
            "spaces": "appDataFolder",
            "fields": "nextPageToken, files(id, name, modifiedTime)",
            "pageSize": "1000",
        }
        while True:
            response = self._handle_response(
                self._client.get(f"{self._api_url}/files", params=params), "list"
            )
            data = response.json()
            files.extend(RemoteFile.from_dict(f) for f in data.get("files", []))
            next_token = data.get("nextPageToken")
            if not next_token:
                break
            params["pageToken"] = next_token

        logger.debug("Listed %d remote files", len(files))
        return files

    def download(self, file_id: str) -> Envelope:
        """Download an envelope by object id.

        Raises:
            NotFoundError: If the object does not exist.
        """
        response = self._handle_response(
            self._client.get(f"{self._api_url}/files/{file_id}", params={"alt": "media"}),
            "download",
        )
        return Envelope.from_dict(response.json())

    def upload(self, name: str, envelope: Envelope, existing_id: str | None = None) -> str:
        """Upload an envelope, overwriting ``existing_id`` when given.

        Args:
            name: Object name (only used when creating).
            envelope: Envelope to store.
            existing_id: Id of the object to overwrite.

        Returns:
            Id of the stored object.
        """
        content = json.dumps(envelope.to_dict())

        if existing_id:
            response = self._handle_response(
                self._client.patch(
                    f"{self._upload_url}/files/{existing_id}",
                    params={"uploadType": "media"},
                    headers={"Content-Type": "application/json"},
                    content=content,
                ),
                "update",
            )
            return str(response.json()["id"])

        metadata = {"name": name, "parents": ["appDataFolder"]}
        body = "\r\n".join(
            [
                f"--{MULTIPART_BOUNDARY}",
                "Content-Type: application/json; charset=UTF-8",
                "",
                json.dumps(metadata),
                f"--{MULTIPART_BOUNDARY}",
                "Content-Type: application/json",
                "",
                content,
                f"--{MULTIPART_BOUNDARY}--",
            ]
        )
        response = self._handle_response(
            self._client.post(
                f"{self._upload_url}/files",
                params={"uploadType": "multipart"},
                headers={"Content-Type": f"multipart/related; boundary={MULTIPART_BOUNDARY}"},
                content=body,
            ),
            "upload",
        )
        return str(response.json()["id"])

    def delete(self, file_id: str) -> None:
        """Delete an object. Already-deleted objects are ignored."""
        try:
            self._handle_response(
                self._client.delete(f"{self._api_url}/files/{file_id}"), "delete"
            )
        except NotFoundError:
            logger.debug("Remote file %s already deleted", file_id)


def delete_files_by_prefix(store: RemoteStore, prefix: str) -> int:
    """Delete every remote object whose name starts with ``prefix``.

    Returns:
        Number of objects deleted.
    """
    deleted = 0
    for file in store.list_files():
        if file.name.startswith(prefix):
            store.delete(file.id)
            deleted += 1
    logger.info("Deleted %d remote files with prefix %r", deleted, prefix)
    return deleted


def delete_all_files(store: RemoteStore) -> int:
    """Delete every remote object.

    Returns:
        Number of objects deleted.
    """
    return delete_files_by_prefix(store, "")
