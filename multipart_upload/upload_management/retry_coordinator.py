"""Retry classification and the retry loop shared by every operation.

Two classifiers exist. ``StatusCodeClassifier`` retries a broad set of
failures, including ones where the body may have been partly sent; it is
only selected when the body can be rewound. ``ServerErrorClassifier``
retries only failures answered by the service itself or connection
attempts that never sent a byte.

A ``RetryPolicy`` bundles a classifier with the hooks that make a retry
safe. It is chosen once per operation by ``select_retry_policy``.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import requests
from urllib3.exceptions import NewConnectionError

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.const import RETRYABLE_STATUS_CODES, SERVER_FAULT_STATUS_CODES
from multipart_upload.exceptions import (
    RetryExhaustedError,
    ServerError,
    TransportError,
    UploadCancelledError,
)
from multipart_upload.upload_management.content_wrapper import SupportsReset

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryClassifier(ABC):
    """Decide whether a failed attempt may be repeated."""

    name = "classifier"

    @abstractmethod
    def should_retry(self, error: Exception) -> bool:
        """Return True if ``error`` is worth another attempt."""


class StatusCodeClassifier(RetryClassifier):
    """Retry throttling, timeouts, 5xx and any transport failure."""

    name = "status-code"

    def should_retry(self, error: Exception) -> bool:
        if isinstance(error, ServerError):
            return (
                error.status_code >= 500 or error.status_code in RETRYABLE_STATUS_CODES
            )
        return isinstance(
            error,
            (
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
                requests.exceptions.ChunkedEncodingError,
            ),
        )


def _connection_never_opened(error: Exception) -> bool:
    """True for connect timeouts and refused or unresolvable connections."""
    if isinstance(error, requests.exceptions.ConnectTimeout):
        return True
    if not isinstance(error, requests.exceptions.ConnectionError):
        return False
    cause = error.args[0] if error.args else None
    cause = getattr(cause, "reason", cause)
    return isinstance(cause, NewConnectionError) or isinstance(
        error.__context__, NewConnectionError
    )


class ServerErrorClassifier(RetryClassifier):
    """Retry only service-side faults and connections that never opened."""

    name = "server-error"

    def should_retry(self, error: Exception) -> bool:
        if isinstance(error, ServerError):
            return (
                error.status_code >= 500
                or error.status_code in SERVER_FAULT_STATUS_CODES
            )
        return _connection_never_opened(error)


STATUS_CODE_CLASSIFIER = StatusCodeClassifier()
SERVER_ERROR_CLASSIFIER = ServerErrorClassifier()


@dataclass(frozen=True)
class RetryPolicy:
    """Classifier plus the hooks run around a retry.

    Attributes:
        classifier: Decides which failures are retryable.
        before_retry: Restores the pre-attempt state, e.g. rewinds the body.
        replay_guard: Must return True for a retry to happen; used to refuse
            replaying a forward-only body that was already partly consumed.
    """

    classifier: RetryClassifier
    before_retry: Callable[[], None] | None = None
    replay_guard: Callable[[], bool] | None = None

    def should_retry(self, error: Exception) -> bool:
        if not self.classifier.should_retry(error):
            return False
        if self.replay_guard is not None and not self.replay_guard():
            logger.warning(
                "Not retrying %s: request body was partly sent and cannot be rewound",
                type(error).__name__,
            )
            return False
        return True


SERVER_FAULT_POLICY = RetryPolicy(SERVER_ERROR_CLASSIFIER)


def select_retry_policy(content: Any) -> RetryPolicy:
    """Pick the retry policy for a request body.

    Resettable bodies get the broad classifier and a rewind hook. Anything
    else gets the server-fault classifier, and a forward-only reader is
    only replayed if it has not handed out any bytes yet.
    """
    if isinstance(content, SupportsReset):
        return RetryPolicy(STATUS_CODE_CLASSIFIER, before_retry=content.reset)
    if hasattr(content, "consumed_bytes"):
        return RetryPolicy(
            SERVER_ERROR_CLASSIFIER,
            replay_guard=lambda: content.consumed_bytes == 0,
        )
    return SERVER_FAULT_POLICY


class RetryCoordinator:
    """Run one operation with classification, backoff and cancellation.

    Attempts are strictly sequential. The whole attempt is repeated, never
    a sub-range of it.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        max_retry_count: int,
        retry_base_delay: float = 1.0,
        max_backoff_seconds: float = 300,
        retry_timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        operation_name: str = "request",
    ) -> None:
        """Initialize the coordinator.

        Args:
            policy: Retry policy for this operation.
            max_retry_count: Retries allowed after the first attempt.
            retry_base_delay: Delay before the first retry, doubled each time.
            max_backoff_seconds: Cap on a single delay.
            retry_timeout: Total time budget in seconds, ``None`` for no limit.
            cancel_event: Aborts the loop when set.
            operation_name: Used in log messages.
        """
        self.policy = policy
        self.max_attempts = max_retry_count + 1
        self.retry_base_delay = retry_base_delay
        self.max_backoff_seconds = max_backoff_seconds
        self.retry_timeout = retry_timeout
        self.cancel_event = cancel_event
        self.operation_name = operation_name

    @classmethod
    def from_config(
        cls,
        config: UploadConfig,
        policy: RetryPolicy,
        cancel_event: threading.Event | None = None,
        operation_name: str = "request",
    ) -> RetryCoordinator:
        return cls(
            policy,
            max_retry_count=config.max_retry_count,
            retry_base_delay=config.retry_base_delay,
            max_backoff_seconds=config.max_backoff_seconds,
            retry_timeout=config.retry_timeout,
            cancel_event=cancel_event,
            operation_name=operation_name,
        )

    def _is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _raise_if_cancelled(self) -> None:
        if self._is_cancelled():
            raise UploadCancelledError(f"{self.operation_name} cancelled")

    def _backoff_delay(self, retry_index: int) -> float:
        """Exponential backoff capped at ``max_backoff_seconds``."""
        return min(self.retry_base_delay * 2**retry_index, self.max_backoff_seconds)

    def _sleep(self, delay: float) -> None:
        if delay <= 0:
            return
        if self.cancel_event is not None:
            self.cancel_event.wait(delay)
        else:
            time.sleep(delay)

    def run(self, attempt: Callable[[], T]) -> T:
        """Call ``attempt`` until it succeeds or the policy says stop.

        Raises:
            UploadCancelledError: If cancellation was observed.
            RetryExhaustedError: If the attempt or time budget ran out.
            ServerError: If the service answered with a non-retryable error.
            TransportError: If a non-retryable transport failure occurred.
        """
        deadline = (
            time.monotonic() + self.retry_timeout
            if self.retry_timeout is not None
            else None
        )
        attempt_number = 0
        while True:
            self._raise_if_cancelled()
            if attempt_number > 0 and self.policy.before_retry is not None:
                self.policy.before_retry()
            attempt_number += 1

            try:
                logger.debug(
                    "%s attempt %d/%d",
                    self.operation_name,
                    attempt_number,
                    self.max_attempts,
                )
                return attempt()
            except UploadCancelledError:
                raise
            except (ServerError, requests.exceptions.RequestException) as exc:
                if self._is_cancelled():
                    raise UploadCancelledError(
                        f"{self.operation_name} cancelled"
                    ) from exc
                if not self.policy.should_retry(exc):
                    if isinstance(exc, ServerError):
                        raise
                    raise TransportError(
                        f"{self.operation_name} failed: {exc}"
                    ) from exc

                delay = self._backoff_delay(attempt_number - 1)
                out_of_time = (
                    deadline is not None and time.monotonic() + delay >= deadline
                )
                if attempt_number >= self.max_attempts or out_of_time:
                    logger.error(
                        "%s failed after %d attempts: %s",
                        self.operation_name,
                        attempt_number,
                        exc,
                    )
                    raise RetryExhaustedError(attempt_number, exc) from exc

                logger.warning(
                    "%s failed (attempt %d/%d, classifier=%s): %s; retrying in %.2fs",
                    self.operation_name,
                    attempt_number,
                    self.max_attempts,
                    self.policy.classifier.name,
                    exc,
                    delay,
                )
                self._sleep(delay)
