"""Retry with exponential backoff for transient store failures."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from colorwager.config import settings
from colorwager.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(func: Callable[..., T], /, *args, **kwargs) -> T:
    """Call a store function, retrying StoreError with exponential backoff.

    Attempts and base delay come from settings (store_retry_attempts,
    store_retry_base_delay_sec). The last StoreError is re-raised; any other
    exception propagates immediately.
    """
    attempts = max(1, settings.store_retry_attempts)
    delay = settings.store_retry_base_delay_sec
    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except StoreError as e:
            if attempt == attempts:
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s, retrying in %.2fs",
                getattr(func, "__name__", "store call"),
                attempt,
                attempts,
                e,
                delay,
            )
            time.sleep(delay)
            delay *= 2
    raise AssertionError("unreachable")
