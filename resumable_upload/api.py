"""
Module for talking to the multipart upload service over HTTP.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .exceptions import CollaboratorError
from .models import CompletedPart, RemoteSession

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000"
DEFAULT_TIMEOUT = 30.0


class UploadApiClient:
    """JSON client for the /uploads endpoints of the upload service."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL,
                 session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        """Initialize the API client.

        Args:
            base_url: Root URL of the upload service
            session: Optional pre-configured requests session
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise CollaboratorError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            raise CollaboratorError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise CollaboratorError(f"{method} {path} returned invalid JSON",
                                    status_code=response.status_code) from e

    def start_session(self, file_name: str, content_type: str) -> RemoteSession:
        """Open a multipart upload for a new object."""
        data = self._request("POST", "/uploads/start",
                             json={"fileName": file_name, "contentType": content_type})
        try:
            return RemoteSession(upload_id=data["uploadId"], object_key=data["key"])
        except (KeyError, TypeError) as e:
            raise CollaboratorError(f"start response missing field {e}") from e

    def get_part_url(self, session: RemoteSession, part_number: int) -> str:
        """Ask for a presigned URL accepting the bytes of one part."""
        data = self._request("POST", "/uploads/part-url", json={
            "key": session.object_key,
            "uploadId": session.upload_id,
            "partNumber": part_number
        })
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise CollaboratorError(f"no URL returned for part {part_number}")
        return url

    def list_parts(self, session: RemoteSession) -> List[CompletedPart]:
        """Parts the storage side has already accepted for a session."""
        data = self._request("GET", "/uploads/parts", params={
            "key": session.object_key,
            "uploadId": session.upload_id
        })
        try:
            return [CompletedPart.from_wire(p) for p in data.get("parts") or []]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CollaboratorError(f"malformed parts listing: {e!r}") from e

    def complete(self, session: RemoteSession, parts: List[CompletedPart]) -> None:
        """Assemble the object from its parts.

        Args:
            session: Session to finalize
            parts: Every part of the object, sorted by part number
        """
        self._request("POST", "/uploads/complete", json={
            "key": session.object_key,
            "uploadId": session.upload_id,
            "parts": [p.to_wire() for p in parts]
        })

    def abort(self, session: RemoteSession) -> None:
        """Release the multipart upload and its stored parts."""
        self._request("DELETE", "/uploads/abort", json={
            "key": session.object_key,
            "uploadId": session.upload_id
        })
