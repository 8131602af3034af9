# ads_attribution/services/retry_policy.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings

from ..models import PostbackJob


def max_retries() -> int:
    return int(getattr(settings, "POSTBACK_MAX_RETRIES", 5))


def initial_backoff_seconds() -> int:
    return int(getattr(settings, "POSTBACK_INITIAL_BACKOFF_SECONDS", 2))


def next_backoff(count: int, initial: Optional[int] = None) -> timedelta:
    if initial is None:
        initial = initial_backoff_seconds()
    return timedelta(seconds=initial * (2 ** max(0, int(count))))


@dataclass(frozen=True)
class RetryState:
    status: str
    retry_count: int
    next_retry_at: Optional[datetime]


def after_failure(retry_count: int, now: datetime, limit: Optional[int] = None, initial: Optional[int] = None) -> RetryState:
    """
    State after one more failed attempt. The delay uses the count *before* this
    failure, so attempts land at +i, +i*2, +i*4 ... from each previous one.
    """
    limit = max_retries() if limit is None else limit
    new_count = int(retry_count) + 1
    if new_count >= limit:
        return RetryState(PostbackJob.FAILED, new_count, None)
    return RetryState(PostbackJob.RETRY, new_count, now + next_backoff(retry_count, initial))


def after_success(retry_count: int) -> RetryState:
    return RetryState(PostbackJob.SUCCESS, int(retry_count), None)
