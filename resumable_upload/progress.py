"""
Module for tracking upload progress and throughput.
"""
import threading
import time
from typing import Callable

from .models import ProgressSnapshot

SAMPLE_INTERVAL = 0.3


class ProgressTracker:
    """Accumulates uploaded bytes and samples instantaneous speed.

    A new speed figure is computed only once ``SAMPLE_INTERVAL`` seconds have
    passed since the previous sample; in between the last figure is held.
    """

    def __init__(self, total_bytes: int, total_chunks: int,
                 clock: Callable[[], float] = time.monotonic):
        self.total_bytes = total_bytes
        self.total_chunks = total_chunks
        self._clock = clock
        self._lock = threading.Lock()
        self._uploaded_bytes = 0
        self._uploaded_chunks = 0
        self._speed = 0.0
        self._sample_time = clock()
        self._sample_bytes = 0

    def start(self, uploaded_bytes: int = 0, uploaded_chunks: int = 0) -> ProgressSnapshot:
        """Reset counters at the beginning of a run and restart sampling."""
        with self._lock:
            self._uploaded_bytes = uploaded_bytes
            self._uploaded_chunks = uploaded_chunks
            self._speed = 0.0
            self._sample_time = self._clock()
            self._sample_bytes = uploaded_bytes
            return self._snapshot()

    def update(self, uploaded_bytes_delta: int, chunks_delta: int = 1) -> ProgressSnapshot:
        """Record newly uploaded bytes.

        Args:
            uploaded_bytes_delta: Bytes acknowledged since the last update
            chunks_delta: Parts acknowledged since the last update

        Returns:
            Current progress snapshot
        """
        with self._lock:
            self._uploaded_bytes += uploaded_bytes_delta
            self._uploaded_chunks += chunks_delta

            now = self._clock()
            elapsed = now - self._sample_time
            if elapsed >= SAMPLE_INTERVAL:
                self._speed = (self._uploaded_bytes - self._sample_bytes) / elapsed
                self._sample_time = now
                self._sample_bytes = self._uploaded_bytes
            return self._snapshot()

    def pause(self) -> ProgressSnapshot:
        """Report zero speed while the upload is paused."""
        with self._lock:
            self._speed = 0.0
            return self._snapshot()

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            uploaded_bytes=self._uploaded_bytes,
            total_bytes=self.total_bytes,
            uploaded_chunks=self._uploaded_chunks,
            total_chunks=self.total_chunks,
            speed_bytes_per_sec=self._speed
        )
