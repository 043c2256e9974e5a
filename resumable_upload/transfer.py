"""
Module for transferring a single part to its presigned URL.
"""
import logging
from pathlib import Path
from typing import Optional

import requests

from .control import CancelToken
from .exceptions import Cancelled, CollaboratorError, TransferError
from .models import ChunkDescriptor, CompletedPart, RemoteSession

logger = logging.getLogger(__name__)

DEFAULT_PUT_TIMEOUT = 300.0
DEFAULT_CONNECT_TIMEOUT = 10.0


def read_chunk(path: Path, descriptor: ChunkDescriptor) -> bytes:
    """Read the bytes of one part from disk."""
    with open(path, 'rb') as f:
        f.seek(descriptor.start)
        data = f.read(descriptor.size)
    if len(data) != descriptor.size:
        raise TransferError(
            f"Short read for part {descriptor.part_number}: "
            f"expected {descriptor.size} bytes, got {len(data)}"
        )
    return data


class CancellableBody:
    """File-like request body that stops mid-transfer once cancelled.

    The HTTP stack pulls the body through ``read`` in blocks, so a
    cancellation tears the connection down within one block.
    """

    def __init__(self, data: bytes, token: CancelToken):
        self._data = memoryview(data)
        self._offset = 0
        self._token = token

    def __len__(self) -> int:
        return len(self._data)

    def read(self, size: int = -1) -> bytes:
        self._token.raise_if_cancelled()
        if size is None or size < 0:
            size = len(self._data) - self._offset
        block = self._data[self._offset:self._offset + size].tobytes()
        self._offset += len(block)
        return block


class PartTransferClient:
    """Uploads one part: sign, PUT, read back the ETag.

    A pause interrupts the PUT while its body is streaming. The signing
    request and the wait for the PUT response are not interruptible; they
    are bounded by the backend's timeout and by ``connect_timeout`` plus
    ``timeout`` respectively. A part whose PUT succeeds after a pause is
    still returned, since storage already holds it.
    """

    def __init__(self, backend, http_session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_PUT_TIMEOUT,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT):
        """Initialize the transfer client.

        Args:
            backend: UploadApiClient or S3UploadBackend issuing part URLs
            http_session: Optional requests session used for the PUT
            timeout: Seconds to wait for the PUT response
            connect_timeout: Seconds to wait for the storage connection
        """
        self.backend = backend
        self.http_session = http_session or requests.Session()
        self.timeout = timeout
        self.connect_timeout = connect_timeout

    def upload_part(self, session: RemoteSession, descriptor: ChunkDescriptor,
                    data: bytes, token: CancelToken) -> CompletedPart:
        """Perform one attempt at uploading a part.

        Args:
            session: Multipart session the part belongs to
            descriptor: Part number and byte range
            data: Bytes of the part
            token: Cancellation token of the current run

        Returns:
            CompletedPart carrying the storage ETag

        Raises:
            Cancelled: if the run was paused or aborted
            TransferError: if signing, the PUT, or the ETag is missing
        """
        part_number = descriptor.part_number

        token.raise_if_cancelled()
        try:
            url = self.backend.get_part_url(session, part_number)
        except CollaboratorError as e:
            if token.cancelled:
                raise Cancelled(f"part {part_number} cancelled") from e
            raise TransferError(f"Failed to get upload URL for part {part_number}: {e}") from e

        token.raise_if_cancelled()
        try:
            response = self.http_session.put(
                url,
                data=CancellableBody(data, token),
                timeout=(self.connect_timeout, self.timeout)
            )
        except Cancelled:
            raise
        except requests.RequestException as e:
            if token.cancelled:
                raise Cancelled(f"part {part_number} cancelled") from e
            raise TransferError(f"Upload of part {part_number} failed: {e}") from e

        if not response.ok:
            raise TransferError(f"Upload of part {part_number} failed: {response.status_code}")

        etag = response.headers.get("ETag")
        if not etag:
            raise TransferError(f"No ETag returned for part {part_number}")

        logger.debug(f"Uploaded part {part_number} ({descriptor.size} bytes), ETag {etag}")
        return CompletedPart(part_number=part_number, etag=etag)
