"""
Payment status derivation.

Status is never stored.  It is recomputed from (paid, month, now) on every
read, so a fee becomes overdue the moment its month is behind the clock
without any job touching it.
"""

from datetime import date, datetime
from enum import Enum

from ledger_kernel.domain.period import Period, parse_period


class PaymentStatus(str, Enum):
    """Derived payment status of a fee or salary."""

    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


def derive_status(paid: bool, month: str, now: date | datetime) -> PaymentStatus:
    """
    PAID if paid; OVERDUE if the month is strictly before now's month;
    otherwise PENDING.  Unparseable months are PENDING, never OVERDUE.
    """
    if paid:
        return PaymentStatus.PAID
    period = parse_period(month)
    if period is None:
        return PaymentStatus.PENDING
    if period < Period.from_date(now):
        return PaymentStatus.OVERDUE
    return PaymentStatus.PENDING
