"""Bounded retry with linear backoff for flaky network calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from errors import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_s = base_delay_s
        self._sleep = sleep

    def execute(
        self,
        operation: Callable[[], T],
        label: str = "API call",
        max_attempts: Optional[int] = None,
    ) -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        Waits ``attempt * base_delay_s`` between attempts. After the last
        failure the final exception is re-raised unchanged. ConfigError is
        never retried.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except ConfigError:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "%s attempt %d/%d failed: %s", label, attempt, attempts, exc
                )
                if attempt < attempts:
                    self._sleep(attempt * self.base_delay_s)
        assert last_error is not None
        raise last_error
