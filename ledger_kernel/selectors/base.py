"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the read side of the kernel: listings and reports built from fees,
    salaries and expenses, with payment status derived at read time.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.  Selectors NEVER create,
    modify, or delete data.
"""

from abc import ABC

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock


class BaseSelector(ABC):
    """
    Abstract base class for read-only selectors.

    Contract:
        Subclasses only query.  "Now" comes from the injected clock so
        derived statuses are reproducible in tests.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
