"""
Pure domain layer.

Period keys, classification snapshots, payment status derivation, the clock
abstraction and result DTOs.  Nothing here touches the ORM or the database.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.period import (
    MONTH_NAMES,
    Period,
    is_current_or_future,
    is_month_completed,
    is_past,
    parse_period,
    period_key,
)
from ledger_kernel.domain.snapshot import ClassificationSnapshot, resolve_display
from ledger_kernel.domain.status import PaymentStatus, derive_status

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "MONTH_NAMES",
    "Period",
    "is_current_or_future",
    "is_month_completed",
    "is_past",
    "parse_period",
    "period_key",
    "ClassificationSnapshot",
    "resolve_display",
    "PaymentStatus",
    "derive_status",
]
