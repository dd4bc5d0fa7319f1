"""
LifecycleHooks -- entry points the CRUD layer calls after its own writes.

Responsibility:
    Wires student/employee creation, promotion and payment events to the
    lifecycle services so callers need a single object.  The CRUD layer
    validates and persists the entity first, then invokes the hook inside
    the same transaction.

Architecture position:
    Kernel > Services -- facade over RecordGenerator,
    ReclassificationService and PaymentService.

Failure modes:
    - on_student_created never fails the creation: a missing program fee
      is logged and returns None.
    - All other hooks propagate the typed errors of the underlying service.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import (
    FeeOutcome,
    GenerationSummary,
    PaymentReceipt,
    PromotionRecord,
    SalaryOutcome,
)
from ledger_kernel.domain.period import Period
from ledger_kernel.exceptions import ProgramFeeNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.generation_service import RecordGenerator
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.reclassification_service import ReclassificationService

logger = get_logger("services.hooks")


class LifecycleHooks(BaseService):
    """Caller-triggered lifecycle entry points."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        system_actor_id: UUID | None = None,
    ):
        super().__init__(session, clock)
        self.generator = RecordGenerator(session, self._clock, system_actor_id)
        self.reclassification = ReclassificationService(session, self._clock, self.generator)
        self.payments = PaymentService(session, self._clock, system_actor_id)

    def on_student_created(self, student_id: UUID) -> FeeOutcome | None:
        """Generate the current month's fee for a newly created student."""
        try:
            return self.generator.generate_fee_for_student(student_id)
        except ProgramFeeNotFoundError as exc:
            logger.warning(
                "initial_fee_skipped",
                extra={"student_id": str(student_id), "program": exc.program},
            )
            return None

    def on_employee_created(
        self,
        employee_id: UUID,
        actor_id: UUID | None = None,
    ) -> SalaryOutcome:
        """Generate the current month's salary (and mirror) for a new employee."""
        return self.generator.generate_salary_for_employee(employee_id, actor_id=actor_id)

    def on_promotion(
        self,
        student_id: UUID,
        new_class: str,
        new_program: str,
        new_session: str,
        actor_id: UUID,
    ) -> PromotionRecord:
        return self.reclassification.promote_student(
            student_id, new_class, new_program, new_session, actor_id
        )

    def on_payment_recorded(self, record_id: UUID, actor_id: UUID) -> PaymentReceipt:
        return self.payments.record_payment(record_id, actor_id)

    def generate_now(
        self,
        period: Period | str | None = None,
        actor_id: UUID | None = None,
    ) -> GenerationSummary:
        """Manual "generate now" trigger for one period."""
        return self.generator.generate_for_period(period, actor_id=actor_id)
