"""
PaymentService -- one-way payment transitions and salary mirror sync.

Responsibility:
    Marks fees and salaries paid exactly once, keeps each salary's mirror
    Expense in step with it, and reconciles mirrors that were deferred or
    drifted.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - paid moves false -> true exactly once.  A second call raises
      AlreadyPaidError and leaves the first paid_date/paid_by_id intact.
    - paid_date comes from the injected clock; paid_by_id from the caller.
    - The salary is authoritative.  Mirror sync runs in its own SAVEPOINT;
      a mirror failure is logged and never rolls the salary back.
    - Paying a mirror expense pays its salary; a mirror is never paid ahead
      of its salary.
    - Flush-only: never commits.

Failure modes:
    - FeeNotFoundError / SalaryNotFoundError / ExpenseNotFoundError /
      RecordNotFoundError.
    - AlreadyPaidError on a repeated payment.

Audit relevance:
    Each payment logs record id, month, amount and actor.  Mirror drift is
    logged as ``salary_mirror_sync_failed`` and repaired by
    ``reconcile_salary_mirrors``.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import MirrorReconciliation, PaymentReceipt
from ledger_kernel.exceptions import (
    AlreadyPaidError,
    ExpenseNotFoundError,
    FeeNotFoundError,
    RecordNotFoundError,
    SalaryNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models import Employee, Expense, Fee, Salary
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.generation_service import create_salary_mirror

logger = get_logger("services.payment")


class PaymentService(BaseService):
    """
    Payment state machine for fees and salaries.

    Contract:
        ``mark_fee_paid`` / ``mark_salary_paid`` return a PaymentReceipt.
        ``record_payment`` dispatches on the record id.

    Non-goals:
        - No partial payments and no reversal.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        system_actor_id: UUID | None = None,
    ):
        super().__init__(session, clock)
        self._system_actor_id = system_actor_id

    def mark_fee_paid(self, fee_id: UUID, actor_id: UUID) -> PaymentReceipt:
        """
        Mark a fee paid.

        Raises:
            FeeNotFoundError: Unknown fee.
            AlreadyPaidError: The fee is already paid.
        """
        fee = self.session.get(Fee, fee_id)
        if fee is None:
            raise FeeNotFoundError(str(fee_id))
        self._settle(fee, "Fee", actor_id)

        logger.info(
            "fee_marked_paid",
            extra={
                "fee_id": str(fee.id),
                "student_id": str(fee.student_id),
                "month": fee.month,
                "amount": fee.amount,
                "actor_id": str(actor_id),
            },
        )
        return PaymentReceipt(
            record_type="fee",
            record_id=fee.id,
            month=fee.month,
            amount=fee.amount,
            paid_date=fee.paid_date,
            paid_by_id=fee.paid_by_id,
        )

    def mark_salary_paid(self, salary_id: UUID, actor_id: UUID) -> PaymentReceipt:
        """
        Mark a salary paid and set its mirror expense paid.

        Raises:
            SalaryNotFoundError: Unknown salary.
            AlreadyPaidError: The salary is already paid.
        """
        salary = self.session.get(Salary, salary_id)
        if salary is None:
            raise SalaryNotFoundError(str(salary_id))
        self._settle(salary, "Salary", actor_id)

        logger.info(
            "salary_marked_paid",
            extra={
                "salary_id": str(salary.id),
                "employee_id": str(salary.employee_id),
                "month": salary.month,
                "amount": salary.amount,
                "actor_id": str(actor_id),
            },
        )
        synced = self._sync_mirror(salary)
        return PaymentReceipt(
            record_type="salary",
            record_id=salary.id,
            month=salary.month,
            amount=salary.amount,
            paid_date=salary.paid_date,
            paid_by_id=salary.paid_by_id,
            mirror_synced=synced,
        )

    def mark_expense_paid(self, expense_id: UUID, actor_id: UUID) -> PaymentReceipt:
        """
        Mark an expense paid.

        A salary mirror is settled through its salary, so the two flags move
        together; any other expense just has its flag set.

        Raises:
            ExpenseNotFoundError: Unknown expense.
            AlreadyPaidError: The expense (or its salary) is already paid.
        """
        expense = self.session.get(Expense, expense_id)
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        if expense.salary_id is not None:
            return self.mark_salary_paid(expense.salary_id, actor_id)

        if expense.paid:
            raise AlreadyPaidError("Expense", str(expense.id), None)
        expense.paid = True
        self.session.flush()

        logger.info(
            "expense_marked_paid",
            extra={
                "expense_id": str(expense.id),
                "category": expense.category,
                "month": expense.month,
                "amount": expense.amount,
                "actor_id": str(actor_id),
            },
        )
        return PaymentReceipt(
            record_type="expense",
            record_id=expense.id,
            month=expense.month,
            amount=expense.amount,
            paid_date=self._clock.now(),
            paid_by_id=actor_id,
        )

    def record_payment(self, record_id: UUID, actor_id: UUID) -> PaymentReceipt:
        """
        Mark whichever fee or salary has ``record_id`` as paid.

        Raises:
            RecordNotFoundError: No fee or salary has that id.
            AlreadyPaidError: The record is already paid.
        """
        with LogContext.bind(actor_id=actor_id):
            if self.session.get(Fee, record_id) is not None:
                return self.mark_fee_paid(record_id, actor_id)
            if self.session.get(Salary, record_id) is not None:
                return self.mark_salary_paid(record_id, actor_id)
        raise RecordNotFoundError(str(record_id))

    def reconcile_salary_mirrors(self, actor_id: UUID | None = None) -> MirrorReconciliation:
        """
        Create missing mirrors and repair paid-flag drift.

        Mirrors can only be created with an actor (argument or configured
        system actor); without one they stay deferred.
        """
        creator = actor_id or self._system_actor_id
        created = repaired = deferred = 0

        rows = self.session.execute(
            select(Salary, Employee, Expense)
            .join(Employee, Salary.employee_id == Employee.id)
            .outerjoin(Expense, Expense.salary_id == Salary.id)
            .order_by(Salary.month, Employee.name)
        ).all()

        for salary, employee, expense in rows:
            if expense is None:
                if creator is None:
                    deferred += 1
                    continue
                try:
                    with self.session.begin_nested():
                        create_salary_mirror(self.session, salary, employee, creator)
                except Exception:
                    logger.exception(
                        "salary_mirror_create_failed",
                        extra={"salary_id": str(salary.id)},
                    )
                    deferred += 1
                    continue
                created += 1
            elif salary.paid and not expense.paid:
                expense.paid = True
                self.session.flush()
                repaired += 1
                logger.info(
                    "salary_mirror_drift_repaired",
                    extra={"salary_id": str(salary.id), "expense_id": str(expense.id)},
                )

        result = MirrorReconciliation(
            mirrors_created=created,
            drift_repaired=repaired,
            still_deferred=deferred,
        )
        logger.info(
            "salary_mirrors_reconciled",
            extra={
                "mirrors_created": created,
                "drift_repaired": repaired,
                "still_deferred": deferred,
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _settle(self, record, record_type: str, actor_id: UUID) -> None:
        if record.paid:
            logger.warning(
                "payment_rejected_already_paid",
                extra={"record_type": record_type, "record_id": str(record.id)},
            )
            raise AlreadyPaidError(record_type, str(record.id), record.paid_date)
        record.paid = True
        record.paid_date = self._clock.now()
        record.paid_by_id = actor_id
        self.session.flush()

    def _sync_mirror(self, salary: Salary) -> bool:
        """Set the mirror expense paid.  Returns False when missing or failed."""
        try:
            with self.session.begin_nested():
                expense = self.session.execute(
                    select(Expense).where(Expense.salary_id == salary.id)
                ).scalar_one_or_none()
                if expense is None:
                    logger.warning(
                        "salary_mirror_missing",
                        extra={"salary_id": str(salary.id)},
                    )
                    return False
                expense.paid = True
                self.session.flush()
        except Exception:
            logger.exception(
                "salary_mirror_sync_failed",
                extra={"salary_id": str(salary.id)},
            )
            return False
        return True
