"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    service in the kernel layer.  Services receive a SQLAlchemy ``Session``
    and an injected ``Clock`` and persist via ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back the outer transaction themselves.  They
    may open SAVEPOINTs (``session.begin_nested()``) to isolate one entity
    from another.  The caller (scheduler, CRUD layer, test harness) owns
    commit/rollback.
"""

from abc import ABC

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.period import Period


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those belong in
          ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def current_period(self) -> Period:
        """The period containing the clock's current time."""
        return Period.from_date(self._clock.now())
