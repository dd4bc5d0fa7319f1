"""
Pure schedule math for the daily generation run.

Contract:
    Every function takes "now" from the caller and performs no I/O, so the
    scheduler's timing is testable with a DeterministicClock.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta


def next_run_after(now: datetime, run_at: time) -> datetime:
    """
    The next wall-clock occurrence of ``run_at`` strictly after ``now``.

    The result keeps ``now``'s tzinfo; day arithmetic is wall-clock, so the
    run stays at 00:01 local time across DST changes.
    """
    candidate = now.replace(
        hour=run_at.hour,
        minute=run_at.minute,
        second=0,
        microsecond=0,
    )
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until(now: datetime, target: datetime) -> float:
    """Seconds from ``now`` to ``target``, never negative."""
    return max(0.0, (target - now).total_seconds())


def is_first_day_of_month(now: datetime) -> bool:
    return now.day == 1


def advance(target: datetime, interval: timedelta, now: datetime, run_at: time) -> datetime:
    """
    The run after ``target``: one interval later, or the next ``run_at``
    after ``now`` if that is already behind the clock (the process slept).
    """
    following = target + interval
    if following <= now:
        return next_run_after(now, run_at)
    return following
