"""
Module for retrying part transfers with exponential backoff.
"""
import logging
from typing import Callable, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential
)

from .control import CancelToken
from .exceptions import ExhaustedRetries, TransferError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3


class RetryPolicy:
    """Retries TransferError with 1s, 2s, 4s... backoff until attempts run out.

    Cancellation is checked before every attempt and interrupts a pending
    backoff sleep. ``Cancelled`` and any other error pass straight through.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts

    def run(self, work: Callable[[], T], token: CancelToken, part_number: int = 0) -> T:
        """Run ``work`` until it succeeds or attempts are exhausted.

        Args:
            work: Zero-argument callable performing one attempt
            token: Cancellation token of the current run
            part_number: Part being uploaded, for error reporting

        Returns:
            The value returned by the first successful attempt

        Raises:
            Cancelled: if the token is cancelled before or during an attempt
            ExhaustedRetries: if every attempt raised TransferError
        """
        def attempt() -> T:
            token.raise_if_cancelled()
            return work()

        retrying = Retrying(
            retry=retry_if_exception_type(TransferError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, exp_base=2),
            sleep=token.wait,
            before_sleep=before_sleep_log(logger, logging.WARNING)
        )
        try:
            return retrying(attempt)
        except RetryError as e:
            raise ExhaustedRetries(part_number, e.last_attempt.exception()) from e
