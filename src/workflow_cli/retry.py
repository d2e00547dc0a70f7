"""Sequential retry helper used by the service and blob-store clients."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retries(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    delay_seconds: float = 0.5,
    backoff: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    give_up_on: tuple[type[BaseException], ...] = (),
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``attempts`` times and re-raise the last error.

    Exceptions matching ``give_up_on`` propagate immediately without further attempts.
    """

    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    delay = delay_seconds
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except give_up_on:
            raise
        except retry_on as e:
            if attempt == attempts:
                raise
            logger.debug(
                "Retrying after failure",
                extra={
                    "operation": description,
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "error": str(e),
                },
            )
            if delay > 0:
                sleep(delay)
            delay *= backoff

    raise AssertionError("unreachable")
