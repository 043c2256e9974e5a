"""
Module for cooperative pause and cancellation of an upload run.
"""
import logging
import threading
from typing import Optional

from .exceptions import Cancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """One-shot cancellation signal issued for a single start/resume run."""

    def __init__(self):
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise Cancelled if the token has been triggered."""
        if self._event.is_set():
            raise Cancelled("upload run was cancelled")

    def wait(self, timeout: Optional[float]) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled
        """
        return self._event.wait(timeout)


class PauseController:
    """Holds the pause flag and the cancellation token of the current run."""

    def __init__(self):
        self._lock = threading.Lock()
        self._paused = False
        self._token = CancelToken()

    @property
    def token(self) -> CancelToken:
        with self._lock:
            return self._token

    def pause(self) -> None:
        """Set the pause flag and cancel in-flight transfers."""
        with self._lock:
            self._paused = True
            self._token.cancel()
        logger.info("Pausing upload")

    def resume(self) -> CancelToken:
        """Clear the pause flag and issue a fresh token for the next run."""
        with self._lock:
            self._paused = False
            self._token = CancelToken()
            return self._token

    def is_paused(self) -> bool:
        with self._lock:
            return self._paused
