"""
ReclassificationService -- class/program changes and their effect on fees.

Responsibility:
    Applies a student's change of class, program, section or session and
    cascades it to the student's fees: open fees (unpaid, current or future
    month) are repriced to the new program's fee, and the current month's
    fee is generated if missing.  Covers the manual edit path, single and
    bulk promotion / repeat, class-level program reassignment, and
    employee salary changes.

Architecture position:
    Kernel > Services -- imperative shell.  Uses RecordGenerator for the
    post-cascade fee generation.

Invariants enforced:
    - Cascade scope: only fees with paid=False AND month >= current period
      are repriced.  Past and paid fees keep their amount; unparseable
      months are left untouched.
    - Snapshots are never rewritten: the student row changes, existing fees'
      historical_* columns do not.
    - Promotions append a StudentPromotion row; history is never edited.
    - Flush-only: never commits.

Failure modes:
    - StudentNotFoundError / EmployeeNotFoundError / SchoolClassNotFoundError.
    - ProgramFeeNotFoundError on promotion when the target program has no
      price (student left untouched).  The manual edit path instead logs and
      skips repricing.
    - ClosedRecordError from reprice_fee() on a paid or past fee.

Audit relevance:
    Every repricing logs old and new amounts with the count of fees touched.
    Salary changes log how many open salaries kept their old amount, since
    generated salaries are deliberately not repriced.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import to_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import (
    CascadeResult,
    FeeOutcome,
    PromotionBatchResult,
    PromotionRecord,
)
from ledger_kernel.domain.period import is_current_or_future, session_label
from ledger_kernel.exceptions import (
    ClosedRecordError,
    EmployeeNotFoundError,
    FeeNotFoundError,
    LedgerError,
    ProgramFeeNotFoundError,
    SchoolClassNotFoundError,
    StudentNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models import (
    Employee,
    Fee,
    PromotionAction,
    Salary,
    SchoolClass,
    Student,
    StudentPromotion,
    StudentStatus,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.generation_service import RecordGenerator

logger = get_logger("services.reclassification")


class ReclassificationService(BaseService):
    """
    Reclassification cascade.

    Contract:
        Every entry point that changes a student's class or program
        reprices open fees with the new program's current fee and then
        ensures the current period's fee exists.

    Non-goals:
        - Does NOT reprice generated salaries when an employee's salary
          changes (logged, see ``change_employee_salary``).
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        generator: RecordGenerator | None = None,
    ):
        super().__init__(session, clock)
        self._generator = generator or RecordGenerator(session, self._clock)

    # -------------------------------------------------------------------------
    # Repricing
    # -------------------------------------------------------------------------

    def reprice_open_fees(self, student: Student, new_amount: Decimal) -> int:
        """
        Overwrite the amount of every unpaid current/future fee of the student.

        Returns:
            Number of fees whose amount changed.
        """
        current = self.current_period()
        new_amount = to_money(new_amount)
        open_fees = self.session.execute(
            select(Fee).where(
                Fee.student_id == student.id,
                Fee.paid == False,  # noqa: E712
            )
        ).scalars().all()

        repriced = 0
        for fee in open_fees:
            if not is_current_or_future(fee.month, current):
                continue
            if fee.amount == new_amount:
                continue
            fee.amount = new_amount
            repriced += 1

        if repriced:
            self.session.flush()
        logger.info(
            "open_fees_repriced",
            extra={
                "student_id": str(student.id),
                "new_amount": new_amount,
                "repriced_count": repriced,
                "current_period": current.key,
            },
        )
        return repriced

    def reprice_fee(self, fee_id: UUID, new_amount: Decimal | int | str) -> Decimal:
        """
        Set a new amount on one open fee.

        Raises:
            FeeNotFoundError: Unknown fee.
            ClosedRecordError: The fee is paid or its month is not current/future.
        """
        fee = self.session.get(Fee, fee_id)
        if fee is None:
            raise FeeNotFoundError(str(fee_id))
        if fee.paid:
            raise ClosedRecordError("Fee", str(fee.id), fee.month, "fee is paid")
        if not is_current_or_future(fee.month, self.current_period()):
            raise ClosedRecordError("Fee", str(fee.id), fee.month, "month is closed")

        old_amount = fee.amount
        fee.amount = to_money(new_amount)
        self.session.flush()
        logger.info(
            "fee_repriced",
            extra={
                "fee_id": str(fee.id),
                "old_amount": old_amount,
                "new_amount": fee.amount,
            },
        )
        return fee.amount

    # -------------------------------------------------------------------------
    # Manual edit path
    # -------------------------------------------------------------------------

    def reclassify_student(
        self,
        student_id: UUID,
        *,
        class_name: str | None = None,
        program: str | None = None,
        section: str | None = None,
        session: str | None = None,
        actor_id: UUID | None = None,
    ) -> CascadeResult:
        """
        Apply classification edits to a student and cascade to fees.

        The new program is the explicit ``program`` if given, else the
        program mapped to the new class, else unchanged.  A missing price
        for that program leaves fees as they are (logged).  When an actor is
        given and class or program changed, a RECLASSIFIED history row is
        appended.
        """
        student = self._get_student(student_id)
        old_class, old_program, old_session = student.class_name, student.program, student.session

        if class_name is not None:
            student.class_name = class_name
        if program is not None:
            student.program = program
        elif class_name is not None and class_name != old_class:
            mapped = self._class_program(class_name)
            if mapped is not None:
                student.program = mapped
        if section is not None:
            student.section = section
        if session is not None:
            student.session = session
        self.session.flush()

        changed = student.class_name != old_class or student.program != old_program
        if not changed:
            return CascadeResult(student_id=student.id, classification_changed=False)

        if actor_id is not None:
            self._append_history(
                student,
                old_class=old_class,
                old_program=old_program,
                old_session=old_session,
                action=PromotionAction.RECLASSIFIED,
                actor_id=actor_id,
            )

        try:
            price = self._generator.program_fee_for(student.program)
        except ProgramFeeNotFoundError:
            logger.warning(
                "reclassification_price_missing",
                extra={"student_id": str(student.id), "program": student.program},
            )
            return CascadeResult(student_id=student.id, classification_changed=True)

        repriced = self.reprice_open_fees(student, price.fee_amount)
        current_fee = self._generate_current_fee(student)
        return CascadeResult(
            student_id=student.id,
            classification_changed=True,
            repriced_count=repriced,
            new_amount=price.fee_amount,
            current_fee=current_fee,
        )

    # -------------------------------------------------------------------------
    # Promotion
    # -------------------------------------------------------------------------

    def promote_student(
        self,
        student_id: UUID,
        new_class: str,
        new_program: str,
        new_session: str,
        actor_id: UUID,
        *,
        section: str | None = None,
        action: PromotionAction = PromotionAction.PROMOTED,
    ) -> PromotionRecord:
        """
        Move a student to a new class/program/session.

        Raises:
            StudentNotFoundError: Unknown student.
            ProgramFeeNotFoundError: ``new_program`` has no price; the
                student is left unchanged.
        """
        student = self._get_student(student_id)
        price = self._generator.program_fee_for(new_program)

        old_class, old_program, old_session = student.class_name, student.program, student.session
        student.class_name = new_class
        student.program = new_program
        student.session = new_session
        if section is not None:
            student.section = section
        self.session.flush()

        repriced = self.reprice_open_fees(student, price.fee_amount)
        self._append_history(
            student,
            old_class=old_class,
            old_program=old_program,
            old_session=old_session,
            action=action,
            actor_id=actor_id,
        )
        self._generate_current_fee(student)

        logger.info(
            "student_promoted",
            extra={
                "student_id": str(student.id),
                "old_class": old_class,
                "new_class": new_class,
                "new_program": new_program,
                "action": action.value,
                "actor_id": str(actor_id),
            },
        )
        return PromotionRecord(
            student_id=student.id,
            name=student.name,
            old_class=old_class,
            new_class=new_class,
            old_session=old_session,
            new_session=new_session,
            repriced_count=repriced,
        )

    def promote_class(
        self,
        current_class: str,
        next_class: str | None,
        actor_id: UUID,
        *,
        action: PromotionAction = PromotionAction.PROMOTED,
        student_ids: list[UUID] | None = None,
        session: str | None = None,
        section: str | None = None,
    ) -> PromotionBatchResult:
        """
        Promote (or repeat) the ACTIVE students of a class.

        REPEATED keeps students in ``current_class``; PROMOTED moves them to
        ``next_class``.  The program comes from the target class's mapping,
        falling back to each student's own program.  The session defaults to
        "<Y>-<Y+1>" for the clock's year.  Each student runs in its own
        SAVEPOINT; failures are collected and the rest continue.

        Raises:
            ValueError: PROMOTED without ``next_class``.
            SchoolClassNotFoundError: ``next_class`` is not a known class.
        """
        if action == PromotionAction.PROMOTED and not next_class:
            raise ValueError("next_class is required to promote")
        target_class = current_class if action == PromotionAction.REPEATED else next_class
        target = self.session.execute(
            select(SchoolClass).where(SchoolClass.name == target_class)
        ).scalar_one_or_none()
        if target is None and action == PromotionAction.PROMOTED:
            raise SchoolClassNotFoundError(target_class)

        new_session = session or session_label(self._clock.now().year)

        query = select(Student).where(
            Student.class_name == current_class,
            Student.status == StudentStatus.ACTIVE.value,
        )
        if student_ids:
            query = query.where(Student.id.in_(student_ids))
        students = self.session.execute(query.order_by(Student.roll_no)).scalars().all()

        promoted: list[PromotionRecord] = []
        errors: list[str] = []
        for student in students:
            new_program = target.program if target is not None else student.program
            try:
                with self.session.begin_nested():
                    record = self.promote_student(
                        student.id,
                        target_class,
                        new_program,
                        new_session,
                        actor_id,
                        section=section,
                        action=action,
                    )
            except ProgramFeeNotFoundError as exc:
                errors.append(
                    f"No program fee found for {student.name} (Program: {exc.program})"
                )
                continue
            except LedgerError as exc:
                logger.warning(
                    "promotion_failed",
                    extra={"student_id": str(student.id), "error_code": exc.code},
                )
                errors.append(f"{student.name}: {exc}")
                continue
            promoted.append(record)

        logger.info(
            "class_promotion_completed",
            extra={
                "current_class": current_class,
                "target_class": target_class,
                "action": action.value,
                "promoted": len(promoted),
                "errors": len(errors),
            },
        )
        return PromotionBatchResult(promoted=tuple(promoted), errors=tuple(errors))

    def reassign_class_program(
        self,
        class_name: str,
        new_program: str,
        actor_id: UUID | None = None,
    ) -> tuple[CascadeResult, ...]:
        """
        Map a class to a different program and cascade to its ACTIVE students.

        Raises:
            SchoolClassNotFoundError: Unknown class.
        """
        school_class = self.session.execute(
            select(SchoolClass).where(SchoolClass.name == class_name)
        ).scalar_one_or_none()
        if school_class is None:
            raise SchoolClassNotFoundError(class_name)

        school_class.program = new_program
        self.session.flush()

        students = self.session.execute(
            select(Student).where(
                Student.class_name == class_name,
                Student.status == StudentStatus.ACTIVE.value,
            ).order_by(Student.roll_no)
        ).scalars().all()

        results = tuple(
            self.reclassify_student(student.id, program=new_program, actor_id=actor_id)
            for student in students
        )
        logger.info(
            "class_program_reassigned",
            extra={
                "class_name": class_name,
                "new_program": new_program,
                "students": len(results),
            },
        )
        return results

    # -------------------------------------------------------------------------
    # Employees
    # -------------------------------------------------------------------------

    def change_employee_salary(self, employee_id: UUID, new_salary: Decimal | int | str) -> int:
        """
        Update an employee's salary for future generation.

        Already generated salaries keep their amount, unlike fees.

        Returns:
            Number of unpaid salaries left at the previous amount.
        """
        employee = self.session.get(Employee, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(str(employee_id))

        old_salary = employee.salary
        employee.salary = to_money(new_salary)
        self.session.flush()

        open_salaries = self.session.execute(
            select(func.count(Salary.id)).where(
                Salary.employee_id == employee.id,
                Salary.paid == False,  # noqa: E712
            )
        ).scalar_one()
        if open_salaries:
            logger.warning(
                "open_salaries_not_repriced",
                extra={
                    "employee_id": str(employee.id),
                    "old_salary": old_salary,
                    "new_salary": employee.salary,
                    "open_salaries": open_salaries,
                },
            )
        return open_salaries

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _get_student(self, student_id: UUID) -> Student:
        student = self.session.get(Student, student_id)
        if student is None:
            raise StudentNotFoundError(str(student_id))
        return student

    def _class_program(self, class_name: str) -> str | None:
        return self.session.execute(
            select(SchoolClass.program).where(SchoolClass.name == class_name)
        ).scalar_one_or_none()

    def _append_history(
        self,
        student: Student,
        *,
        old_class: str,
        old_program: str | None,
        old_session: str | None,
        action: PromotionAction,
        actor_id: UUID,
    ) -> StudentPromotion:
        row = StudentPromotion(
            student_id=student.id,
            old_class=old_class,
            new_class=student.class_name,
            old_program=old_program,
            new_program=student.program,
            old_session=old_session,
            new_session=student.session,
            action=action.value,
            promoted_by_id=actor_id,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def _generate_current_fee(self, student: Student) -> FeeOutcome | None:
        """Ensure the current month's fee exists; failures are logged, not raised."""
        try:
            return self._generator.generate_fee_for_student(student.id, self.current_period())
        except LedgerError:
            logger.warning(
                "current_fee_generation_failed",
                extra={"student_id": str(student.id)},
                exc_info=True,
            )
            return None
