"""
GenerationScheduler -- in-process daily trigger for record generation.

Contract:
    ``start()`` runs one generation immediately, then sleeps until the next
    local ``run_at`` (00:01 by default) and runs every ``interval`` after
    that until ``stop()``.  ``run_once()`` is the manual "generate now"
    trigger with the same idempotency guarantees.

Architecture: ledger_batch.  Uses ledger_batch.schedule for pure timing and
    ledger_kernel.services.RecordGenerator for the work.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Runs are serialized by a process-local lock, so a manual trigger and
      the timer never generate concurrently in one process.  Across
      processes the database uniqueness constraints keep generation
      idempotent.
    - One session per run: committed on success, rolled back on failure.
      A failed run is logged and the loop keeps going.
    - Graceful shutdown: waiting uses the stop event, so stop() returns
      promptly.
"""

from __future__ import annotations

import threading
from datetime import time, timedelta
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import GenerationSummary
from ledger_kernel.domain.period import Period
from ledger_kernel.exceptions import SchedulerAlreadyRunningError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.generation_service import RecordGenerator

from ledger_batch.schedule import (
    advance,
    is_first_day_of_month,
    next_run_after,
    seconds_until,
)

logger = get_logger("batch.scheduler")


class GenerationScheduler:
    """In-process scheduler for monthly record generation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
        - Does NOT retry a failed run before the next scheduled time.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        system_actor_id: UUID | None = None,
        run_at: time = time(0, 1),
        interval: timedelta = timedelta(hours=24),
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._system_actor_id = system_actor_id
        self._run_at = run_at
        self._interval = interval
        self._stop_event = threading.Event()
        self._run_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._run_count = 0
        self._last_summary: GenerationSummary | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_once(self, period: Period | str | None = None) -> GenerationSummary | None:
        """Generate records for ``period`` (default: current) in a fresh session.

        Returns the run summary, or None when the run failed and was rolled back.

        Raises:
            InvalidPeriodError: ``period`` is a malformed key.
        """
        if isinstance(period, str):
            period = Period.parse(period)

        with self._run_lock, LogContext.bind(run_id=str(uuid4())):
            session = self._session_factory()
            try:
                generator = RecordGenerator(session, self._clock, self._system_actor_id)
                summary = generator.generate_for_period(period)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("generation_run_failed")
                return None
            finally:
                session.close()

            self._run_count += 1
            self._last_summary = summary
            self._report(summary)
            return summary

    def start(self) -> None:
        """Start the scheduler in a background thread.

        Raises:
            SchedulerAlreadyRunningError: The thread is already alive.
        """
        if self._thread is not None and self._thread.is_alive():
            raise SchedulerAlreadyRunningError(self._thread.name)

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="ledger-generation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "run_at": self._run_at.strftime("%H:%M"),
                "interval_seconds": self._interval.total_seconds(),
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler thread to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped", extra={"runs": self._run_count})

    def join(self, timeout: float | None = None) -> None:
        """Block until the scheduler thread exits or ``timeout`` elapses."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def run_count(self) -> int:
        return self._run_count

    @property
    def last_summary(self) -> GenerationSummary | None:
        return self._last_summary

    def next_run(self) -> Period | None:
        """Period the next timed run will target, or None when stopped."""
        if not self.is_running:
            return None
        return Period.from_date(next_run_after(self._clock.now(), self._run_at))

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background loop. Exits when stop_event is set."""
        self._guarded_run()
        target = next_run_after(self._clock.now(), self._run_at)
        while not self._stop_event.wait(timeout=seconds_until(self._clock.now(), target)):
            self._guarded_run()
            target = advance(target, self._interval, self._clock.now(), self._run_at)

    def _guarded_run(self) -> None:
        try:
            self.run_once()
        except Exception:
            logger.exception("scheduler_run_exception")

    def _report(self, summary: GenerationSummary) -> None:
        logger.info(
            "generation_run_completed",
            extra={
                "period": summary.period,
                "records_created": summary.records_created,
                "fees_created": summary.fees_created,
                "salaries_created": summary.salaries_created,
                "skipped": len(summary.skipped),
            },
        )
        if is_first_day_of_month(self._clock.now()) and summary.overdue:
            logger.warning(
                "overdue_watch_alert",
                extra={
                    "period": summary.period,
                    "overdue_students": len(summary.overdue),
                    "overdue_amount": summary.overdue_amount,
                    "students": [
                        {
                            "roll_no": entry.roll_no,
                            "name": entry.name,
                            "overdue_count": entry.overdue_count,
                            "overdue_amount": entry.overdue_amount,
                        }
                        for entry in summary.overdue
                    ],
                },
            )
