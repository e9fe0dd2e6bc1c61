"""Retry helpers for generator calls."""
from __future__ import annotations

import time
from typing import Callable, Tuple, Type, TypeVar

from .config import RetryPolicy

T = TypeVar("T")


def execute_with_retry(
    action: Callable[[float], T],
    *,
    policy: RetryPolicy,
    description: str,
    logger,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleeper: Callable[[float], None] = time.sleep,
) -> T:
    """Execute ``action`` with retry/backoff semantics.

    ``action`` receives the per-attempt timeout. With ``policy.retries == 0``
    the action runs exactly once and its error propagates unchanged.
    """

    attempt = 0
    while True:
        try:
            return action(policy.timeout_seconds)
        except retry_on as exc:
            attempt += 1
            if attempt > policy.retries:
                raise
            delay = max(0.0, policy.backoff_factor * (2 ** (attempt - 1)))
            logger.warning(
                "Retrying %s in %.2fs (%d/%d attempts) after error: %s",
                description,
                delay,
                attempt,
                policy.retries,
                exc,
            )
            if delay:
                sleeper(delay)


__all__ = ["execute_with_retry"]
