"""
RecordGenerator -- idempotent per-period fee and salary materialization.

Responsibility:
    For a period, ensures every ACTIVE student has exactly one Fee and every
    employee exactly one Salary (with its mirror Expense), then reports which
    active students carry overdue fees.  Also provides the single-record
    variants used by the student/employee creation and promotion paths.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by ledger_batch.scheduler (whole period), LifecycleHooks and
    ReclassificationService (single records).

Invariants enforced:
    - One record per (owner, period): checked before insert and backed by
      uq_fee_student_month / uq_salary_employee_month.  A uniqueness
      violation on insert is counted as "already present".
    - A fee's amount is the ProgramFee of the student's *current* program
      and its snapshot is the student's current classification.
    - A salary's amount is the employee's current salary.
    - Each entity is processed in its own SAVEPOINT; one failure never
      aborts the run.
    - Flush-only: never commits the caller's transaction.

Failure modes:
    - ProgramFeeNotFoundError (single-record path) / PROGRAM_FEE_MISSING skip
      (batch path) when the program has no price.
    - StudentNotFoundError / EmployeeNotFoundError for unknown ids.
    - InvalidPeriodError for a malformed period key supplied by a caller.
    - DuplicatePeriodRecordError from create_manual_fee().

Audit relevance:
    Every created record and every skip is logged with its period; the run
    summary is logged once per run.  Deferred salary mirrors are logged so
    reconciliation can be traced.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import to_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import (
    FeeOutcome,
    GenerationSummary,
    OverdueWatchEntry,
    SalaryOutcome,
    SkippedEntity,
    SkipReason,
)
from ledger_kernel.domain.period import Period, is_past
from ledger_kernel.domain.snapshot import stamp_snapshot
from ledger_kernel.exceptions import (
    DuplicatePeriodRecordError,
    EmployeeNotFoundError,
    ProgramFeeNotFoundError,
    StudentNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models import (
    SALARY_EXPENSE_CATEGORY,
    Employee,
    Expense,
    Fee,
    ProgramFee,
    Salary,
    Student,
    StudentStatus,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.generation")


def salary_expense_description(employee: Employee) -> str:
    return f"Salary for {employee.name} - {employee.position}"


class RecordGenerator(BaseService):
    """
    Materializes monthly fee and salary records.

    Contract:
        ``generate_for_period`` may be called any number of times for the
        same period; only the first call creates records.

    Non-goals:
        - Does NOT reprice existing records (ReclassificationService).
        - Does NOT commit.
        - Not a distributed lock: concurrent processes are reconciled by the
          database uniqueness constraints.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        system_actor_id: UUID | None = None,
    ):
        super().__init__(session, clock)
        self._system_actor_id = system_actor_id

    # -------------------------------------------------------------------------
    # Whole-period generation
    # -------------------------------------------------------------------------

    def generate_for_period(
        self,
        period: Period | str | None = None,
        actor_id: UUID | None = None,
    ) -> GenerationSummary:
        """
        Ensure one Fee per ACTIVE student and one Salary per employee.

        Args:
            period: Target period (Period or key); defaults to the current one.
            actor_id: Creator recorded on salary mirrors; falls back to the
                configured system actor.

        Returns:
            GenerationSummary with created/existing counts, skips and the
            overdue watch list.
        """
        period = self._resolve_period(period)
        counts: dict[str, int] = defaultdict(int)
        skipped: list[SkippedEntity] = []

        with LogContext.bind(period=period.key):
            logger.info("generation_started")
            self._generate_fees(period, counts, skipped)
            self._generate_salaries(period, actor_id, counts, skipped)
            overdue = self.overdue_watch_list(period)

            summary = GenerationSummary(
                period=period.key,
                fees_created=counts["fees_created"],
                fees_existing=counts["fees_existing"],
                salaries_created=counts["salaries_created"],
                salaries_existing=counts["salaries_existing"],
                mirrors_created=counts["mirrors_created"],
                mirrors_deferred=counts["mirrors_deferred"],
                skipped=tuple(skipped),
                overdue=overdue,
            )
            logger.info(
                "generation_completed",
                extra={
                    "fees_created": summary.fees_created,
                    "fees_existing": summary.fees_existing,
                    "salaries_created": summary.salaries_created,
                    "salaries_existing": summary.salaries_existing,
                    "mirrors_deferred": summary.mirrors_deferred,
                    "skipped": len(summary.skipped),
                    "overdue_students": len(summary.overdue),
                },
            )
        return summary

    def _generate_fees(self, period, counts, skipped) -> None:
        students = self.session.execute(
            select(Student)
            .where(Student.status == StudentStatus.ACTIVE.value)
            .order_by(Student.roll_no)
        ).scalars().all()

        for student in students:
            try:
                with self.session.begin_nested():
                    outcome = self._ensure_fee(student, period)
            except ProgramFeeNotFoundError as exc:
                logger.warning(
                    "fee_generation_skipped",
                    extra={
                        "student_id": str(student.id),
                        "program": exc.program,
                        "reason": SkipReason.PROGRAM_FEE_MISSING.value,
                    },
                )
                skipped.append(
                    SkippedEntity(
                        entity_type="student",
                        entity_id=student.id,
                        name=student.name,
                        reason=SkipReason.PROGRAM_FEE_MISSING,
                        detail=str(exc),
                    )
                )
                continue
            except IntegrityError:
                # Created concurrently between the existence check and insert
                logger.info(
                    "fee_exists_on_insert",
                    extra={"student_id": str(student.id)},
                )
                counts["fees_existing"] += 1
                continue
            except Exception as exc:
                logger.exception(
                    "fee_generation_failed",
                    extra={"student_id": str(student.id)},
                )
                skipped.append(
                    SkippedEntity(
                        entity_type="student",
                        entity_id=student.id,
                        name=student.name,
                        reason=SkipReason.GENERATION_FAILED,
                        detail=str(exc),
                    )
                )
                continue

            counts["fees_created" if outcome.created else "fees_existing"] += 1

    def _generate_salaries(self, period, actor_id, counts, skipped) -> None:
        employees = self.session.execute(
            select(Employee).order_by(Employee.name)
        ).scalars().all()

        for employee in employees:
            try:
                with self.session.begin_nested():
                    outcome = self._ensure_salary(employee, period, actor_id)
            except IntegrityError:
                logger.info(
                    "salary_exists_on_insert",
                    extra={"employee_id": str(employee.id)},
                )
                counts["salaries_existing"] += 1
                continue
            except Exception as exc:
                logger.exception(
                    "salary_generation_failed",
                    extra={"employee_id": str(employee.id)},
                )
                skipped.append(
                    SkippedEntity(
                        entity_type="employee",
                        entity_id=employee.id,
                        name=employee.name,
                        reason=SkipReason.GENERATION_FAILED,
                        detail=str(exc),
                    )
                )
                continue

            if not outcome.created:
                counts["salaries_existing"] += 1
                continue
            counts["salaries_created"] += 1
            if outcome.mirror_deferred:
                counts["mirrors_deferred"] += 1
            else:
                counts["mirrors_created"] += 1

    # -------------------------------------------------------------------------
    # Single-record generation
    # -------------------------------------------------------------------------

    def generate_fee_for_student(
        self,
        student_id: UUID,
        period: Period | str | None = None,
    ) -> FeeOutcome:
        """
        Ensure the student has a fee for the period.

        Raises:
            StudentNotFoundError: Unknown student.
            ProgramFeeNotFoundError: The student's program has no price.
        """
        period = self._resolve_period(period)
        student = self.session.get(Student, student_id)
        if student is None:
            raise StudentNotFoundError(str(student_id))

        try:
            with self.session.begin_nested():
                return self._ensure_fee(student, period)
        except IntegrityError:
            existing = self._existing_fee(student.id, period.key)
            if existing is None:
                raise
            return self._fee_outcome(existing, created=False)

    def generate_salary_for_employee(
        self,
        employee_id: UUID,
        period: Period | str | None = None,
        actor_id: UUID | None = None,
    ) -> SalaryOutcome:
        """
        Ensure the employee has a salary (and mirror) for the period.

        Raises:
            EmployeeNotFoundError: Unknown employee.
        """
        period = self._resolve_period(period)
        employee = self.session.get(Employee, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(str(employee_id))

        try:
            with self.session.begin_nested():
                return self._ensure_salary(employee, period, actor_id)
        except IntegrityError:
            existing = self._existing_salary(employee.id, period.key)
            if existing is None:
                raise
            return self._salary_outcome(existing, created=False)

    def create_manual_fee(
        self,
        student_id: UUID,
        month: str,
        amount: Decimal | int | str,
    ) -> FeeOutcome:
        """
        Create an ad-hoc fee at an explicit amount.

        The snapshot is stamped exactly as for generated fees.

        Raises:
            StudentNotFoundError: Unknown student.
            InvalidPeriodError: Malformed month.
            DuplicatePeriodRecordError: A fee already exists for that month.
        """
        period = Period.parse(month)
        student = self.session.get(Student, student_id)
        if student is None:
            raise StudentNotFoundError(str(student_id))
        if self._existing_fee(student.id, period.key) is not None:
            raise DuplicatePeriodRecordError("Fee", str(student.id), period.key)

        try:
            with self.session.begin_nested():
                fee = self._insert_fee(student, period, to_money(amount))
        except IntegrityError:
            raise DuplicatePeriodRecordError("Fee", str(student.id), period.key)
        return self._fee_outcome(fee, created=True)

    # -------------------------------------------------------------------------
    # Overdue watch list
    # -------------------------------------------------------------------------

    def overdue_watch_list(self, period: Period | None = None) -> tuple[OverdueWatchEntry, ...]:
        """Active students with unpaid fees from periods strictly before ``period``."""
        period = period or self.current_period()
        rows = self.session.execute(
            select(Fee, Student)
            .join(Student, Fee.student_id == Student.id)
            .where(
                Fee.paid == False,  # noqa: E712
                Student.status == StudentStatus.ACTIVE.value,
            )
            .order_by(Student.roll_no)
        ).all()

        grouped: dict[UUID, list[Fee]] = defaultdict(list)
        students: dict[UUID, Student] = {}
        for fee, student in rows:
            if is_past(fee.month, period):
                grouped[student.id].append(fee)
                students[student.id] = student

        return tuple(
            OverdueWatchEntry(
                student_id=student_id,
                roll_no=students[student_id].roll_no,
                name=students[student_id].name,
                overdue_count=len(fees),
                overdue_amount=sum((f.amount for f in fees), Decimal("0")),
                overdue_months=tuple(f.month for f in fees),
            )
            for student_id, fees in grouped.items()
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _resolve_period(self, period: Period | str | None) -> Period:
        if period is None:
            return self.current_period()
        if isinstance(period, str):
            return Period.parse(period)
        return period

    def _existing_fee(self, student_id: UUID, month: str) -> Fee | None:
        return self.session.execute(
            select(Fee).where(Fee.student_id == student_id, Fee.month == month)
        ).scalar_one_or_none()

    def _existing_salary(self, employee_id: UUID, month: str) -> Salary | None:
        return self.session.execute(
            select(Salary).where(Salary.employee_id == employee_id, Salary.month == month)
        ).scalar_one_or_none()

    def program_fee_for(self, program: str) -> ProgramFee:
        price = self.session.execute(
            select(ProgramFee).where(ProgramFee.program == program)
        ).scalar_one_or_none()
        if price is None:
            raise ProgramFeeNotFoundError(program)
        return price

    def _ensure_fee(self, student: Student, period: Period) -> FeeOutcome:
        existing = self._existing_fee(student.id, period.key)
        if existing is not None:
            return self._fee_outcome(existing, created=False)
        price = self.program_fee_for(student.program)
        fee = self._insert_fee(student, period, price.fee_amount)
        return self._fee_outcome(fee, created=True)

    def _insert_fee(self, student: Student, period: Period, amount: Decimal) -> Fee:
        fee = Fee(
            student_id=student.id,
            month=period.key,
            amount=amount,
            paid=False,
        )
        stamp_snapshot(fee, student)
        self.session.add(fee)
        self.session.flush()
        logger.info(
            "fee_generated",
            extra={
                "fee_id": str(fee.id),
                "student_id": str(student.id),
                "month": period.key,
                "amount": amount,
                "class_name": student.class_name,
                "program": student.program,
            },
        )
        return fee

    def _ensure_salary(
        self,
        employee: Employee,
        period: Period,
        actor_id: UUID | None,
    ) -> SalaryOutcome:
        existing = self._existing_salary(employee.id, period.key)
        if existing is not None:
            return self._salary_outcome(existing, created=False)

        salary = Salary(
            employee_id=employee.id,
            month=period.key,
            amount=employee.salary,
            paid=False,
        )
        self.session.add(salary)
        self.session.flush()
        logger.info(
            "salary_generated",
            extra={
                "salary_id": str(salary.id),
                "employee_id": str(employee.id),
                "month": period.key,
                "amount": employee.salary,
            },
        )

        creator = actor_id or self._system_actor_id
        if creator is None:
            logger.warning(
                "salary_mirror_deferred",
                extra={"salary_id": str(salary.id), "employee_id": str(employee.id)},
            )
            return self._salary_outcome(salary, created=True, mirror_deferred=True)

        expense = create_salary_mirror(self.session, salary, employee, creator)
        return self._salary_outcome(salary, created=True, expense_id=expense.id)

    @staticmethod
    def _fee_outcome(fee: Fee, created: bool) -> FeeOutcome:
        return FeeOutcome(
            fee_id=fee.id,
            student_id=fee.student_id,
            month=fee.month,
            amount=fee.amount,
            created=created,
        )

    @staticmethod
    def _salary_outcome(
        salary: Salary,
        created: bool,
        expense_id: UUID | None = None,
        mirror_deferred: bool = False,
    ) -> SalaryOutcome:
        if expense_id is None and salary.mirror_expense is not None:
            expense_id = salary.mirror_expense.id
        return SalaryOutcome(
            salary_id=salary.id,
            employee_id=salary.employee_id,
            month=salary.month,
            amount=salary.amount,
            created=created,
            expense_id=expense_id,
            mirror_deferred=mirror_deferred,
        )


def create_salary_mirror(
    session: Session,
    salary: Salary,
    employee: Employee,
    creator_id: UUID,
) -> Expense:
    """Create the Expense that mirrors ``salary``; its paid flag follows the salary."""
    expense = Expense(
        category=SALARY_EXPENSE_CATEGORY,
        description=salary_expense_description(employee),
        amount=salary.amount,
        month=salary.month,
        paid=salary.paid,
        salary=salary,
        created_by_id=creator_id,
    )
    session.add(expense)
    session.flush()
    logger.info(
        "salary_mirror_created",
        extra={
            "salary_id": str(salary.id),
            "expense_id": str(expense.id),
            "created_by_id": str(creator_id),
        },
    )
    return expense
