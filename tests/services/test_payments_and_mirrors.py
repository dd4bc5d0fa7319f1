"""
Tests for PaymentService -- one-way payments and salary mirror consistency.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import event, select

from ledger_kernel.exceptions import (
    AlreadyPaidError,
    ExpenseNotFoundError,
    FeeNotFoundError,
    RecordNotFoundError,
    SalaryNotFoundError,
)
from ledger_kernel.models import Expense, Fee, Salary
from ledger_kernel.services import payment_service as payment_module
from ledger_kernel.services.generation_service import RecordGenerator
from ledger_kernel.services.payment_service import PaymentService

PAY_TIME = datetime(2025, 3, 15, 10, 0)


@pytest.fixture
def fee_id(create_student, program_fees, generator):
    student = create_student()
    return generator.generate_fee_for_student(student.id, "March 2025").fee_id


@pytest.fixture
def salary_id(create_employee, generator):
    employee = create_employee(name="Bilal", position="Clerk")
    return generator.generate_salary_for_employee(employee.id, "March 2025").salary_id


# =============================================================================
# Fees
# =============================================================================


class TestFeePayment:

    def test_mark_paid_records_clock_time_and_actor(
        self, session, payment_service, fee_id, test_actor_id
    ):
        receipt = payment_service.mark_fee_paid(fee_id, test_actor_id)

        assert receipt.record_type == "fee"
        assert receipt.paid_date == PAY_TIME
        assert receipt.paid_by_id == test_actor_id
        fee = session.get(Fee, fee_id)
        assert fee.paid is True
        assert fee.paid_date == PAY_TIME

    def test_second_payment_rejected_and_first_preserved(
        self, session, payment_service, deterministic_clock, fee_id, test_actor_id
    ):
        payment_service.mark_fee_paid(fee_id, test_actor_id)
        deterministic_clock.advance(3600)

        with pytest.raises(AlreadyPaidError) as exc_info:
            payment_service.mark_fee_paid(fee_id, uuid4())

        assert exc_info.value.paid_date == PAY_TIME
        fee = session.get(Fee, fee_id)
        assert fee.paid_date == PAY_TIME
        assert fee.paid_by_id == test_actor_id

    def test_unknown_fee(self, payment_service, test_actor_id):
        with pytest.raises(FeeNotFoundError):
            payment_service.mark_fee_paid(uuid4(), test_actor_id)

    def test_payment_logged(self, payment_service, fee_id, test_actor_id, captured_logs):
        payment_service.mark_fee_paid(fee_id, test_actor_id)
        paid = [r for r in captured_logs() if r["message"] == "fee_marked_paid"]
        assert paid[0]["fee_id"] == str(fee_id)
        assert paid[0]["amount"] == "5000.00"


# =============================================================================
# Salaries and mirrors
# =============================================================================


class TestSalaryPayment:

    def test_salary_payment_marks_mirror_paid(
        self, session, payment_service, salary_id, test_actor_id
    ):
        receipt = payment_service.mark_salary_paid(salary_id, test_actor_id)

        assert receipt.mirror_synced is True
        salary = session.get(Salary, salary_id)
        assert salary.paid is True
        assert salary.mirror_expense.paid is True

    def test_second_salary_payment_rejected(
        self, payment_service, salary_id, test_actor_id
    ):
        payment_service.mark_salary_paid(salary_id, test_actor_id)
        with pytest.raises(AlreadyPaidError):
            payment_service.mark_salary_paid(salary_id, test_actor_id)

    def test_missing_mirror_does_not_block_salary(
        self, session, deterministic_clock, create_employee, test_actor_id, captured_logs
    ):
        employee = create_employee()
        deferred = RecordGenerator(session, deterministic_clock, None)
        outcome = deferred.generate_salary_for_employee(employee.id, "March 2025")
        assert outcome.mirror_deferred is True

        receipt = PaymentService(session, deterministic_clock).mark_salary_paid(
            outcome.salary_id, test_actor_id
        )

        assert receipt.mirror_synced is False
        assert session.get(Salary, outcome.salary_id).paid is True
        assert any(r["message"] == "salary_mirror_missing" for r in captured_logs())

    def test_mirror_failure_keeps_salary_paid(
        self, session, payment_service, salary_id, test_actor_id, captured_logs
    ):
        def refuse_mirror_update(mapper, connection, target):
            raise RuntimeError("mirror write failed")

        event.listen(Expense, "before_update", refuse_mirror_update)
        try:
            receipt = payment_service.mark_salary_paid(salary_id, test_actor_id)
        finally:
            event.remove(Expense, "before_update", refuse_mirror_update)

        assert receipt.mirror_synced is False
        assert session.get(Salary, salary_id).paid is True
        assert any(r["message"] == "salary_mirror_sync_failed" for r in captured_logs())

    def test_unknown_salary(self, payment_service, test_actor_id):
        with pytest.raises(SalaryNotFoundError):
            payment_service.mark_salary_paid(uuid4(), test_actor_id)


# =============================================================================
# Expenses
# =============================================================================


class TestExpensePayment:

    def test_paying_mirror_pays_its_salary(
        self, session, payment_service, salary_id, test_actor_id
    ):
        mirror = session.get(Salary, salary_id).mirror_expense

        receipt = payment_service.mark_expense_paid(mirror.id, test_actor_id)

        assert receipt.record_type == "salary"
        assert receipt.record_id == salary_id
        salary = session.get(Salary, salary_id)
        assert salary.paid is True
        assert salary.paid_by_id == test_actor_id
        assert salary.paid == salary.mirror_expense.paid

    def test_mirror_of_paid_salary_rejected(
        self, session, payment_service, salary_id, test_actor_id
    ):
        payment_service.mark_salary_paid(salary_id, test_actor_id)
        mirror = session.get(Salary, salary_id).mirror_expense

        with pytest.raises(AlreadyPaidError):
            payment_service.mark_expense_paid(mirror.id, test_actor_id)

    def test_standalone_expense_paid_once(self, session, payment_service, test_actor_id):
        expense = Expense(
            category="Utilities",
            description="Electricity",
            amount=Decimal("1200.00"),
            month="March 2025",
            created_by_id=test_actor_id,
        )
        session.add(expense)
        session.flush()

        receipt = payment_service.mark_expense_paid(expense.id, test_actor_id)

        assert receipt.record_type == "expense"
        assert receipt.paid_date == PAY_TIME
        assert expense.paid is True
        with pytest.raises(AlreadyPaidError):
            payment_service.mark_expense_paid(expense.id, test_actor_id)

    def test_unknown_expense(self, payment_service, test_actor_id):
        with pytest.raises(ExpenseNotFoundError):
            payment_service.mark_expense_paid(uuid4(), test_actor_id)


# =============================================================================
# Dispatch
# =============================================================================


class TestRecordPayment:

    def test_dispatches_to_fee(self, payment_service, fee_id, test_actor_id):
        assert payment_service.record_payment(fee_id, test_actor_id).record_type == "fee"

    def test_dispatches_to_salary(self, payment_service, salary_id, test_actor_id):
        assert payment_service.record_payment(salary_id, test_actor_id).record_type == "salary"

    def test_unknown_record(self, payment_service, test_actor_id):
        with pytest.raises(RecordNotFoundError):
            payment_service.record_payment(uuid4(), test_actor_id)


# =============================================================================
# Reconciliation
# =============================================================================


class TestMirrorReconciliation:

    def test_deferred_mirrors_created_once_actor_available(
        self, session, deterministic_clock, create_employee, test_actor_id
    ):
        create_employee(name="A")
        create_employee(name="B")
        RecordGenerator(session, deterministic_clock, None).generate_for_period("March 2025")

        without_actor = PaymentService(session, deterministic_clock).reconcile_salary_mirrors()
        assert without_actor.still_deferred == 2
        assert without_actor.mirrors_created == 0

        with_actor = PaymentService(session, deterministic_clock).reconcile_salary_mirrors(
            test_actor_id
        )
        assert with_actor.mirrors_created == 2
        mirrors = session.execute(select(Expense)).scalars().all()
        assert {m.created_by_id for m in mirrors} == {test_actor_id}

        again = PaymentService(session, deterministic_clock).reconcile_salary_mirrors(
            test_actor_id
        )
        assert again.mirrors_created == 0

    def test_mirror_created_late_for_paid_salary_is_paid(
        self, session, deterministic_clock, create_employee, test_actor_id
    ):
        employee = create_employee()
        outcome = RecordGenerator(session, deterministic_clock, None).generate_salary_for_employee(
            employee.id, "March 2025"
        )
        PaymentService(session, deterministic_clock).mark_salary_paid(
            outcome.salary_id, test_actor_id
        )

        PaymentService(session, deterministic_clock, test_actor_id).reconcile_salary_mirrors()

        mirror = session.execute(select(Expense)).scalar_one()
        assert mirror.paid is True
        assert mirror.amount == Decimal("30000.00")

    def test_drift_repaired(self, session, payment_service, salary_id, test_actor_id):
        salary = session.get(Salary, salary_id)
        # Reproduce drift left by a failed sync
        salary.paid = True
        salary.paid_date = PAY_TIME
        salary.paid_by_id = test_actor_id
        session.flush()

        result = payment_service.reconcile_salary_mirrors()

        assert result.drift_repaired == 1
        assert salary.mirror_expense.paid is True

    def test_failed_mirror_creation_does_not_abort_pass(
        self, session, deterministic_clock, create_employee, test_actor_id,
        monkeypatch, captured_logs
    ):
        create_employee(name="A")
        create_employee(name="B")
        RecordGenerator(session, deterministic_clock, None).generate_for_period("March 2025")

        real_create = payment_module.create_salary_mirror
        calls = []

        def fail_first(session, salary, employee, creator_id):
            calls.append(employee.name)
            if len(calls) == 1:
                raise RuntimeError("insert failed")
            return real_create(session, salary, employee, creator_id)

        monkeypatch.setattr(payment_module, "create_salary_mirror", fail_first)

        result = PaymentService(session, deterministic_clock).reconcile_salary_mirrors(
            test_actor_id
        )

        assert result.mirrors_created == 1
        assert result.still_deferred == 1
        assert session.execute(select(Expense)).scalars().all()[0].description.startswith(
            "Salary for B"
        )
        assert any(r["message"] == "salary_mirror_create_failed" for r in captured_logs())
