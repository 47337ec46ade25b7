"""Scoped, time-bucketed counters.

A small ``check_and_increment`` interface over Django's cache, the same
storage django-ratelimit counts in. Used for per-user limits on actions that
are not plain view hits, such as manual reminders.
"""

from __future__ import annotations

import logging
import time

from django.core.cache import cache

logger = logging.getLogger(__name__)


def _bucket_key(key: str, window: int, now: float) -> str:
    return f"heirloom:rl:{key}:{int(now // window)}"


def check_and_increment(
    key: str, limit: int, window: int, now: float | None = None
) -> bool:
    """Count one hit against ``key`` and report whether it is within ``limit``.

    Args:
        key: Scope of the counter, e.g. ``"manual-reminder:42"``
        limit: Maximum hits allowed per window
        window: Window length in seconds

    Returns:
        True if this hit is allowed, False once the limit is exceeded
    """
    if limit <= 0 or window <= 0:
        return False
    now = time.time() if now is None else now
    cache_key = _bucket_key(key, window, now)
    if cache.add(cache_key, 1, timeout=window):
        count = 1
    else:
        try:
            count = cache.incr(cache_key)
        except ValueError:
            # Expired between add() and incr()
            cache.set(cache_key, 1, timeout=window)
            count = 1
    allowed = count <= limit
    if not allowed:
        logger.info(f"Rate limit reached for {key} ({count}/{limit} per {window}s)")
    return allowed


def current_usage(key: str, window: int, now: float | None = None) -> int:
    now = time.time() if now is None else now
    return cache.get(_bucket_key(key, window, now), 0)
