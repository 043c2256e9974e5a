"""
Module containing data models for the resumable upload client.
"""
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class UploadState(str, Enum):
    """Lifecycle states of an upload orchestrator."""
    IDLE = "idle"
    PLANNING = "planning"
    TRANSFERRING = "transferring"
    PAUSED = "paused"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class UploadTarget:
    """Identifies the file being uploaded."""
    file_name: str
    file_size: int
    path: Optional[Path] = None
    content_type: str = "application/octet-stream"

    def __post_init__(self):
        """Validate the upload target."""
        if not self.file_name:
            raise ValueError("file_name cannot be empty")
        if self.file_size < 0:
            raise ValueError(f"file_size must be >= 0, got {self.file_size}")

    @classmethod
    def from_path(cls, path: Path, content_type: Optional[str] = None) -> "UploadTarget":
        """Build a target from a file on disk.

        Args:
            path: Path to the file to upload
            content_type: MIME type; guessed from the file name when omitted

        Returns:
            UploadTarget describing the file
        """
        path = Path(path)
        if not path.is_file():
            raise ValueError(f"{path} is not a file")
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(
            file_name=path.name,
            file_size=path.stat().st_size,
            path=path,
            content_type=content_type
        )


@dataclass(frozen=True)
class RemoteSession:
    """A multipart upload session held by the storage collaborator."""
    upload_id: str
    object_key: str


@dataclass(frozen=True)
class ChunkDescriptor:
    """One contiguous byte range [start, end) of the source file."""
    part_number: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class CompletedPart:
    """A part acknowledged by the storage layer."""
    part_number: int
    etag: str

    def to_wire(self) -> Dict[str, object]:
        return {"PartNumber": self.part_number, "ETag": self.etag}

    @classmethod
    def from_wire(cls, data: Dict[str, object]) -> "CompletedPart":
        return cls(part_number=int(data["PartNumber"]), etag=str(data["ETag"]))


@dataclass
class ProgressSnapshot:
    """Point-in-time view of an upload's progress."""
    uploaded_bytes: int
    total_bytes: int
    uploaded_chunks: int
    total_chunks: int
    speed_bytes_per_sec: float = 0.0

    @property
    def percent(self) -> int:
        if self.total_bytes == 0:
            return 0
        return round(self.uploaded_bytes / self.total_bytes * 100)


@dataclass
class UploadOutcome:
    """Result of a start/resume call that did not raise.

    A paused outcome keeps the session so a later ``resume()`` continues it.
    """
    status: UploadState
    object_key: Optional[str] = None
    parts: List[CompletedPart] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status is UploadState.COMPLETED

    @property
    def paused(self) -> bool:
        return self.status is UploadState.PAUSED

    @property
    def aborted(self) -> bool:
        return self.status is UploadState.ABORTED
