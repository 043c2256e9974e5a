from .api import UploadApiClient
from .exceptions import (
    Cancelled,
    CollaboratorError,
    ExhaustedRetries,
    FinalizeError,
    InvalidSession,
    TransferError,
    UploadError,
    UploadStateError
)
from .models import (
    ChunkDescriptor,
    CompletedPart,
    ProgressSnapshot,
    RemoteSession,
    UploadOutcome,
    UploadState,
    UploadTarget
)
from .orchestrator import UploadOrchestrator
from .planner import plan_chunks
from .s3_backend import S3UploadBackend
from .session_store import SessionStore

__version__ = "0.1.0"

__all__ = [
    "UploadOrchestrator",
    "UploadApiClient",
    "S3UploadBackend",
    "SessionStore",
    "plan_chunks",
    "UploadTarget",
    "RemoteSession",
    "ChunkDescriptor",
    "CompletedPart",
    "ProgressSnapshot",
    "UploadOutcome",
    "UploadState",
    "UploadError",
    "Cancelled",
    "TransferError",
    "ExhaustedRetries",
    "InvalidSession",
    "FinalizeError",
    "CollaboratorError",
    "UploadStateError",
]
