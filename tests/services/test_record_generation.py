"""
Tests for RecordGenerator -- per-period fee and salary materialization.

Covers idempotency, snapshot stamping, configuration-gap skips, per-entity
fault isolation, uniqueness races, deferred salary mirrors and the overdue
watch list.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.dtos import SkipReason
from ledger_kernel.domain.period import Period
from ledger_kernel.exceptions import (
    DuplicatePeriodRecordError,
    EmployeeNotFoundError,
    InvalidPeriodError,
    ProgramFeeNotFoundError,
    StudentNotFoundError,
)
from ledger_kernel.models import Expense, Fee, Salary, StudentStatus
from ledger_kernel.services.generation_service import RecordGenerator

MATRIC_FEE = Decimal("5000.00")
FSC_FEE = Decimal("7000.00")


def _count(session, model) -> int:
    return session.execute(select(func.count(model.id))).scalar_one()


# =============================================================================
# Whole-period generation
# =============================================================================


class TestGenerateForPeriod:

    def test_creates_one_fee_per_active_student(
        self, session, generator, program_fees, create_student
    ):
        create_student(name="Ali")
        create_student(name="Sara", class_name="1st Year", program="FSc")
        create_student(name="Gone", status=StudentStatus.GRADUATED)
        create_student(name="Left", status=StudentStatus.DROPPED)

        summary = generator.generate_for_period("March 2025")

        assert summary.period == "March 2025"
        assert summary.fees_created == 2
        assert summary.fees_existing == 0
        amounts = sorted(session.execute(select(Fee.amount)).scalars())
        assert amounts == [MATRIC_FEE, FSC_FEE]

    def test_defaults_to_clock_period(self, generator, program_fees, create_student):
        create_student()
        summary = generator.generate_for_period()
        assert summary.period == "March 2025"

    def test_accepts_period_object(self, generator, program_fees, create_student):
        create_student()
        summary = generator.generate_for_period(Period(2025, 4))
        assert summary.period == "April 2025"

    def test_rerun_is_idempotent(
        self, session, generator, program_fees, create_student, create_employee
    ):
        create_student(name="Ali")
        create_student(name="Sara")
        create_employee(name="Bilal")

        first = generator.generate_for_period("March 2025")
        second = generator.generate_for_period("March 2025")

        assert first.records_created == 3
        assert second.records_created == 0
        assert second.fees_existing == 2
        assert second.salaries_existing == 1
        assert _count(session, Fee) == 2
        assert _count(session, Salary) == 1
        assert _count(session, Expense) == 1

    def test_fee_snapshot_matches_student_at_creation(
        self, session, generator, program_fees, create_student
    ):
        student = create_student(class_name="Class 9", section="B", session_label="2024-2025")
        generator.generate_for_period("March 2025")

        fee = session.execute(select(Fee)).scalar_one()
        assert fee.historical_class == "Class 9"
        assert fee.historical_program == "Matric"
        assert fee.historical_section == "B"
        assert fee.historical_session == "2024-2025"
        assert fee.snapshot.class_name == student.class_name
        assert fee.paid is False
        assert fee.paid_date is None

    def test_missing_program_fee_is_skipped_not_billed_zero(
        self, session, generator, program_fees, create_student
    ):
        create_student(name="Ali")
        orphan = create_student(name="Orphan", program="O-Levels")

        summary = generator.generate_for_period("March 2025")

        assert summary.fees_created == 1
        assert len(summary.skipped) == 1
        skip = summary.skipped[0]
        assert skip.entity_id == orphan.id
        assert skip.reason == SkipReason.PROGRAM_FEE_MISSING
        assert "O-Levels" in skip.detail
        assert session.execute(
            select(Fee).where(Fee.student_id == orphan.id)
        ).first() is None

    def test_one_failure_does_not_abort_the_run(
        self, session, generator, program_fees, create_student, monkeypatch
    ):
        create_student(name="Ali")
        broken = create_student(name="Broken")
        create_student(name="Sara")

        original = generator._insert_fee

        def flaky(student, period, amount):
            if student.name == "Broken":
                raise RuntimeError("disk on fire")
            return original(student, period, amount)

        monkeypatch.setattr(generator, "_insert_fee", flaky)
        summary = generator.generate_for_period("March 2025")

        assert summary.fees_created == 2
        assert [s.entity_id for s in summary.skipped] == [broken.id]
        assert summary.skipped[0].reason == SkipReason.GENERATION_FAILED
        assert _count(session, Fee) == 2

    def test_uniqueness_violation_counts_as_existing(
        self, session, generator, program_fees, create_student, monkeypatch
    ):
        create_student(name="Ali")
        generator.generate_for_period("March 2025")

        # Simulate a concurrent writer: the existence check misses, the insert collides
        monkeypatch.setattr(generator, "_existing_fee", lambda *args: None)
        summary = generator.generate_for_period("March 2025")

        assert summary.fees_created == 0
        assert summary.fees_existing == 1
        assert summary.skipped == ()
        assert _count(session, Fee) == 1

    def test_summary_logged(self, generator, program_fees, create_student, captured_logs):
        create_student()
        generator.generate_for_period("March 2025")

        logs = captured_logs()
        completed = [r for r in logs if r["message"] == "generation_completed"]
        assert completed[0]["fees_created"] == 1
        assert completed[0]["period"] == "March 2025"
        assert any(r["message"] == "fee_generated" for r in logs)

    def test_malformed_period_rejected(self, generator):
        with pytest.raises(InvalidPeriodError):
            generator.generate_for_period("Smarch 2025")


# =============================================================================
# Salaries and mirrors
# =============================================================================


class TestSalaryGeneration:

    def test_salary_copies_current_employee_salary(
        self, session, generator, create_employee, test_actor_id
    ):
        employee = create_employee(name="Bilal", position="Clerk", salary=Decimal("25000.00"))
        outcome = generator.generate_salary_for_employee(employee.id, "March 2025")

        salary = session.get(Salary, outcome.salary_id)
        assert salary.amount == Decimal("25000.00")
        assert salary.paid is False

        mirror = salary.mirror_expense
        assert mirror.id == outcome.expense_id
        assert mirror.category == "Salary"
        assert mirror.description == "Salary for Bilal - Clerk"
        assert mirror.amount == salary.amount
        assert mirror.month == "March 2025"
        assert mirror.paid is False
        assert mirror.created_by_id == test_actor_id

    def test_explicit_actor_recorded_as_mirror_creator(
        self, session, generator, create_employee
    ):
        actor = uuid4()
        create_employee()
        generator.generate_for_period("March 2025", actor_id=actor)
        mirror = session.execute(select(Expense)).scalar_one()
        assert mirror.created_by_id == actor

    def test_mirror_deferred_without_actor(
        self, session, deterministic_clock, create_employee, captured_logs
    ):
        create_employee()
        generator = RecordGenerator(session, deterministic_clock, system_actor_id=None)

        summary = generator.generate_for_period("March 2025")

        assert summary.salaries_created == 1
        assert summary.mirrors_deferred == 1
        assert summary.mirrors_created == 0
        assert _count(session, Expense) == 0
        assert any(r["message"] == "salary_mirror_deferred" for r in captured_logs())

    def test_unknown_employee(self, generator):
        with pytest.raises(EmployeeNotFoundError):
            generator.generate_salary_for_employee(uuid4(), "March 2025")


# =============================================================================
# Single-record generation
# =============================================================================


class TestSingleFee:

    def test_generate_fee_for_student_is_idempotent(
        self, generator, program_fees, create_student
    ):
        student = create_student()
        first = generator.generate_fee_for_student(student.id)
        second = generator.generate_fee_for_student(student.id)

        assert first.created is True
        assert second.created is False
        assert second.fee_id == first.fee_id
        assert first.month == "March 2025"

    def test_missing_price_raises_on_single_path(self, generator, create_student):
        student = create_student(program="Unknown")
        with pytest.raises(ProgramFeeNotFoundError) as exc_info:
            generator.generate_fee_for_student(student.id)
        assert exc_info.value.program == "Unknown"

    def test_unknown_student(self, generator):
        with pytest.raises(StudentNotFoundError):
            generator.generate_fee_for_student(uuid4())


class TestManualFee:

    def test_manual_fee_at_explicit_amount_with_snapshot(
        self, session, generator, create_student
    ):
        student = create_student(class_name="Class 10")
        outcome = generator.create_manual_fee(student.id, "May 2025", "4500")

        fee = session.get(Fee, outcome.fee_id)
        assert fee.amount == Decimal("4500.00")
        assert fee.month == "May 2025"
        assert fee.historical_class == "Class 10"

    def test_duplicate_manual_fee_rejected(self, generator, program_fees, create_student):
        student = create_student()
        generator.generate_fee_for_student(student.id, "March 2025")
        with pytest.raises(DuplicatePeriodRecordError):
            generator.create_manual_fee(student.id, "March 2025", Decimal("100"))

    def test_float_amount_rejected(self, generator, create_student):
        student = create_student()
        with pytest.raises(TypeError):
            generator.create_manual_fee(student.id, "May 2025", 4500.5)

    def test_malformed_month_rejected(self, generator, create_student):
        student = create_student()
        with pytest.raises(InvalidPeriodError):
            generator.create_manual_fee(student.id, "2025-05", Decimal("100"))


# =============================================================================
# Overdue watch list
# =============================================================================


class TestOverdueWatchList:

    def test_lists_active_students_with_fees_before_period(
        self, generator, payment_service, program_fees, create_student, test_actor_id
    ):
        late = create_student(name="Late")
        prompt = create_student(name="Prompt")
        generator.generate_fee_for_student(late.id, "January 2025")
        generator.generate_fee_for_student(late.id, "February 2025")
        paid = generator.generate_fee_for_student(prompt.id, "February 2025")
        payment_service.mark_fee_paid(paid.fee_id, test_actor_id)

        summary = generator.generate_for_period("March 2025")

        assert len(summary.overdue) == 1
        entry = summary.overdue[0]
        assert entry.student_id == late.id
        assert entry.overdue_count == 2
        assert entry.overdue_amount == MATRIC_FEE * 2
        assert set(entry.overdue_months) == {"January 2025", "February 2025"}
        assert summary.overdue_amount == MATRIC_FEE * 2

    def test_current_month_and_inactive_students_excluded(
        self, session, generator, program_fees, create_student
    ):
        graduated = create_student(name="Alumni")
        generator.generate_fee_for_student(graduated.id, "January 2025")
        graduated.status = StudentStatus.GRADUATED.value
        session.flush()
        create_student(name="Fresh")

        summary = generator.generate_for_period("March 2025")
        assert summary.overdue == ()
