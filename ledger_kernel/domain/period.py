"""
Period -- Month-granular period keys.

Responsibility:
    Converts between calendar moments and the human-readable period key
    ("March 2025") stored on every Fee, Salary and Expense, and provides
    ordered comparison of keys.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Keys are "<MonthName> <Year>" using a fixed English month table, so
      formatting never depends on the process locale.
    - Ordering is chronological: (year, month), never lexical.
    - Lenient parsing (``parse_period``) returns None for malformed keys.
      A key that does not parse is non-comparable: it is neither past nor
      current/future, so it is never flagged overdue and never repriced.
    - Strict parsing (``Period.parse``) raises InvalidPeriodError and is
      used where a caller supplies a period.

Failure modes:
    - InvalidPeriodError from Period.parse() on a malformed key.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

from ledger_kernel.exceptions import InvalidPeriodError

MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_KEY_PATTERN = re.compile(r"([A-Za-z]+) (\d{4})")


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month.  Field order (year, month) gives chronological ordering."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1..12, got {self.month}")

    @classmethod
    def from_date(cls, moment: date | datetime) -> Period:
        return cls(moment.year, moment.month)

    @classmethod
    def parse(cls, key: str) -> Period:
        """Parse a period key, raising InvalidPeriodError when malformed."""
        period = parse_period(key)
        if period is None:
            raise InvalidPeriodError(key)
        return period

    @property
    def key(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"

    @property
    def month_index(self) -> int:
        """Zero-based month index (January = 0)."""
        return self.month - 1

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def following_first_day(self) -> date:
        """First day of the month after this one."""
        return self.next().first_day

    def next(self) -> Period:
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def previous(self) -> Period:
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    def __str__(self) -> str:
        return self.key


def period_key(moment: date | datetime) -> str:
    """Format the period key for the month containing ``moment``."""
    return Period.from_date(moment).key


def parse_period(key: str | None) -> Period | None:
    """Parse a period key, returning None when it is malformed."""
    if not isinstance(key, str):
        return None
    match = _KEY_PATTERN.fullmatch(key)
    if match is None:
        return None
    name, year = match.groups()
    if name not in MONTH_NAMES:
        return None
    return Period(int(year), MONTH_NAMES.index(name) + 1)


def is_past(key: str, current: Period) -> bool:
    """True iff ``key`` parses and is strictly before ``current``."""
    period = parse_period(key)
    return period is not None and period < current


def is_current_or_future(key: str, current: Period) -> bool:
    """True iff ``key`` parses and is ``current`` or later."""
    period = parse_period(key)
    return period is not None and period >= current


def is_month_completed(key: str, now: date | datetime) -> bool:
    """
    True iff ``now`` is on or after the first day of the month following ``key``.

    Malformed keys are never completed.
    """
    period = parse_period(key)
    if period is None:
        return False
    today = now.date() if isinstance(now, datetime) else now
    return today >= period.following_first_day


def session_label(year: int) -> str:
    """Academic session label starting in ``year``, e.g. "2025-2026"."""
    return f"{year}-{year + 1}"
