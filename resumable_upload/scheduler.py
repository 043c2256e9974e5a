"""
Module for running part uploads in bounded concurrent batches.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Callable, Optional, Sequence, TypeVar

from .control import CancelToken
from .exceptions import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 5


class ScheduleOutcome(str, Enum):
    COMPLETED = "completed"
    PAUSED = "paused"


class ConcurrencyScheduler:
    """Runs tasks in fixed-size batches, one batch at a time.

    Every task of a batch runs concurrently; the next batch starts only once
    the whole batch has settled. Results are handed to ``on_result`` on the
    calling thread as they arrive, so the callback needs no locking.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.concurrency = concurrency

    def run_all(self, tasks: Sequence[Callable[[], T]], token: CancelToken,
                on_result: Optional[Callable[[T], None]] = None) -> ScheduleOutcome:
        """Run every task, batch by batch.

        Args:
            tasks: Zero-argument callables, in dispatch order
            token: Cancellation token checked before each batch
            on_result: Called with each successful task's return value

        Returns:
            COMPLETED if every task succeeded, PAUSED if cancellation stopped
            the run

        Raises:
            Exception: the first non-cancellation failure of a batch, raised
                once every task in that batch has finished
        """
        total_batches = -(-len(tasks) // self.concurrency)
        for index, offset in enumerate(range(0, len(tasks), self.concurrency)):
            if token.cancelled:
                logger.info(f"Paused before batch {index + 1}/{total_batches}")
                return ScheduleOutcome.PAUSED

            batch = tasks[offset:offset + self.concurrency]
            logger.debug(f"Starting batch {index + 1}/{total_batches} with {len(batch)} tasks")
            if self._run_batch(batch, on_result) or token.cancelled:
                return ScheduleOutcome.PAUSED

        return ScheduleOutcome.COMPLETED

    def _run_batch(self, batch: Sequence[Callable[[], T]],
                   on_result: Optional[Callable[[T], None]]) -> bool:
        """Run one batch to completion; returns True if any task was cancelled."""
        cancelled = False
        first_error: Optional[BaseException] = None

        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            futures = [executor.submit(task) for task in batch]
            for future in as_completed(futures):
                try:
                    result = future.result()
                except Cancelled:
                    cancelled = True
                    continue
                except Exception as e:
                    if first_error is None:
                        first_error = e
                    else:
                        logger.error(f"Additional failure in batch: {e}")
                    continue
                if on_result is not None:
                    on_result(result)

        if first_error is not None:
            raise first_error
        return cancelled
