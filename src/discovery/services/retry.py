from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


def retry_call(
    fn: Callable[[], T],
    max_attempts: int,
    delay: float,
    is_retryable: Callable[[BaseException], bool] = lambda e: True,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds, at most ``max_attempts`` times, sleeping
    ``delay`` seconds between attempts. Errors rejected by ``is_retryable``
    and the error of the last attempt are re-raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:
            if not is_retryable(e):
                raise
            if on_retry is not None:
                on_retry(attempt, e)
            if attempt >= max_attempts:
                raise
        sleep(delay)
        attempt += 1
