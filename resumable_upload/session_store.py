"""
Module for persisting the identity of the in-flight upload.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import InvalidSession
from .models import CompletedPart, RemoteSession, UploadTarget

logger = logging.getLogger(__name__)

SESSION_KEY = "multipart-upload-session"


class SessionStore:
    """Persists a single upload session slot.

    The record is ``{uploadId, key, fileName, fileSize, parts}`` stored under
    one fixed key of a JSON state file. Without a state file the record only
    lives in memory.
    """

    def __init__(self, state_file: Optional[Path] = None):
        """Initialize the session store.

        Args:
            state_file: Path to the state persistence JSON file.
        """
        self.state_file = Path(state_file) if state_file else None
        self._record: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

        self._load_state()

    def _load_state(self) -> None:
        """Load the session record from the state file."""
        if not self.state_file or not self.state_file.exists():
            return

        try:
            with open(self.state_file, 'r') as f:
                data = json.load(f)
            record = data.get(SESSION_KEY)
            if record is not None and not isinstance(record, dict):
                raise ValueError(f"unexpected record type {type(record).__name__}")
            self._record = record
            if record:
                logger.info(f"Loaded upload session {record.get('uploadId')} from {self.state_file}")
        except (OSError, ValueError, AttributeError) as e:
            # A corrupt file means no resumable session.
            logger.error(f"Error loading state file {self.state_file}: {e}")
            self._record = None

    def _save_state(self) -> None:
        """Write the session record to the state file."""
        if not self.state_file:
            return

        data = {SESSION_KEY: self._record} if self._record else {}
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
        with open(tmp_file, 'w') as f:
            json.dump(data, f, indent=2)
        tmp_file.replace(self.state_file)

        logger.debug(f"Saved upload session state to {self.state_file}")

    def load(self, target: UploadTarget) -> Optional[RemoteSession]:
        """Return the persisted session if it belongs to ``target``.

        A record for a different file is discarded.

        Args:
            target: The file about to be uploaded

        Returns:
            RemoteSession if a matching record exists, None otherwise
        """
        with self._lock:
            if not self._record:
                return None
            try:
                session = self._session_for(target)
            except InvalidSession as e:
                logger.info(f"Discarding persisted session: {e}")
                self._record = None
                self._save_state()
                return None
            logger.info(f"Found resumable session {session.upload_id} for {target.file_name}")
            return session

    def _session_for(self, target: UploadTarget) -> RemoteSession:
        record = self._record
        try:
            file_name = record["fileName"]
            file_size = int(record["fileSize"])
            session = RemoteSession(upload_id=str(record["uploadId"]),
                                    object_key=str(record["key"]))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSession(f"malformed record ({e!r})") from e

        if file_name != target.file_name or file_size != target.file_size:
            raise InvalidSession(
                f"record is for {file_name} ({file_size} bytes), "
                f"not {target.file_name} ({target.file_size} bytes)"
            )
        return session

    def save(self, target: UploadTarget, session: RemoteSession) -> None:
        """Persist a freshly created session for ``target``.

        Args:
            target: The file being uploaded
            session: Session issued by the collaborator
        """
        with self._lock:
            self._record = {
                "uploadId": session.upload_id,
                "key": session.object_key,
                "fileName": target.file_name,
                "fileSize": target.file_size,
                "parts": []
            }
            self._save_state()

    def record_part(self, part: CompletedPart) -> None:
        """Append an acknowledged part to the persisted record."""
        with self._lock:
            if not self._record:
                return
            parts = [p for p in self._record.get("parts", [])
                     if p.get("PartNumber") != part.part_number]
            parts.append(part.to_wire())
            self._record["parts"] = parts
            self._save_state()

    def replace_parts(self, parts: List[CompletedPart]) -> None:
        """Overwrite the persisted parts with an authoritative list."""
        with self._lock:
            if not self._record:
                return
            self._record["parts"] = [p.to_wire() for p in sorted(parts, key=lambda p: p.part_number)]
            self._save_state()

    def snapshot(self) -> Optional[Dict[str, Any]]:
        """Copy of the raw persisted record, or None when the slot is empty."""
        with self._lock:
            return json.loads(json.dumps(self._record)) if self._record else None

    def clear(self) -> None:
        """Destroy the persisted record."""
        with self._lock:
            self._record = None
            self._save_state()
        logger.debug("Cleared upload session state")
