"""
ReportSelector -- defaulters and financial reports.

Responsibility:
    Read-only reporting over fees, salaries and expenses: the defaulter
    list, monthly fee and salary reports, employee salary and student
    promotion histories, the income report and the financial overview.

Architecture position:
    Kernel > Selectors.  Never mutates.

Invariants enforced:
    - A student is a defaulter only for unpaid fees of *completed* months:
      the month counts once the clock reaches the first day of the next
      month.  The open month never flags.
    - Income vs expense never double counts salaries: salary mirrors
      (expenses with a salary link) are excluded from other expenses.
    - All sums are Decimal.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import (
    DefaulterEntry,
    EmployeeSalaryHistory,
    FinancialOverview,
    IncomeReport,
    IncomeReportKind,
    MonthlyFeeReport,
    MonthlySalaryReport,
    PromotionHistoryEntry,
    SalaryView,
)
from ledger_kernel.domain.period import Period, is_month_completed, is_past, parse_period
from ledger_kernel.domain.status import PaymentStatus, derive_status
from ledger_kernel.exceptions import EmployeeNotFoundError
from ledger_kernel.models import (
    Employee,
    Expense,
    Fee,
    Salary,
    Student,
    StudentPromotion,
    StudentStatus,
)
from ledger_kernel.selectors.base import BaseSelector


def _total(records) -> Decimal:
    return sum((r.amount for r in records), ZERO)


class ReportSelector(BaseSelector):
    """Read-only financial reports."""

    # -------------------------------------------------------------------------
    # Defaulters
    # -------------------------------------------------------------------------

    def defaulters(self) -> tuple[DefaulterEntry, ...]:
        """Students (any status) with unpaid fees for completed months."""
        now = self._clock.now()
        rows = self.session.execute(
            select(Fee, Student)
            .join(Student, Fee.student_id == Student.id)
            .where(Fee.paid == False)  # noqa: E712
            .order_by(Student.roll_no)
        ).all()

        unpaid: dict = defaultdict(list)
        students: dict = {}
        for fee, student in rows:
            if is_month_completed(fee.month, now):
                unpaid[student.id].append(fee)
                students[student.id] = student

        return tuple(
            DefaulterEntry(
                student_id=student_id,
                roll_no=students[student_id].roll_no,
                name=students[student_id].name,
                class_name=students[student_id].class_name,
                unpaid_months=tuple(f.month for f in fees),
                total_due=_total(fees),
            )
            for student_id, fees in unpaid.items()
        )

    # -------------------------------------------------------------------------
    # Monthly reports
    # -------------------------------------------------------------------------

    def monthly_fee_report(self, month: str) -> MonthlyFeeReport:
        """
        Totals for one month's fees.

        Raises:
            InvalidPeriodError: Malformed month.
        """
        key = Period.parse(month).key
        fees = self.session.execute(select(Fee).where(Fee.month == key)).scalars().all()
        paid = [f for f in fees if f.paid]
        unpaid = [f for f in fees if not f.paid]
        return MonthlyFeeReport(
            month=key,
            total_amount=_total(fees),
            paid_amount=_total(paid),
            unpaid_amount=_total(unpaid),
            total_count=len(fees),
            paid_count=len(paid),
            unpaid_count=len(unpaid),
        )

    def monthly_salary_report(self, month: str) -> MonthlySalaryReport:
        key = Period.parse(month).key
        salaries = self.session.execute(
            select(Salary).where(Salary.month == key)
        ).scalars().all()
        paid = [s for s in salaries if s.paid]
        unpaid = [s for s in salaries if not s.paid]
        return MonthlySalaryReport(
            month=key,
            total_amount=_total(salaries),
            paid_amount=_total(paid),
            unpaid_amount=_total(unpaid),
            total_count=len(salaries),
            paid_count=len(paid),
            unpaid_count=len(unpaid),
        )

    # -------------------------------------------------------------------------
    # Histories
    # -------------------------------------------------------------------------

    def employee_salary_history(self, employee_id: UUID) -> EmployeeSalaryHistory:
        """
        Every salary of one employee with derived status and totals.

        Raises:
            EmployeeNotFoundError: Unknown employee.
        """
        employee = self.session.get(Employee, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(str(employee_id))

        now = self._clock.now()
        salaries = self.session.execute(
            select(Salary).where(Salary.employee_id == employee_id)
        ).scalars().all()
        views = sorted(
            (
                SalaryView(
                    id=s.id,
                    month=s.month,
                    amount=s.amount,
                    paid=s.paid,
                    paid_date=s.paid_date,
                    status=derive_status(s.paid, s.month, now),
                )
                for s in salaries
            ),
            key=_chronological,
        )

        return EmployeeSalaryHistory(
            employee_id=employee.id,
            name=employee.name,
            position=employee.position,
            salaries=tuple(views),
            total_amount=_total(views),
            paid_amount=_total(v for v in views if v.paid),
            unpaid_amount=_total(v for v in views if not v.paid),
            overdue_amount=_total(v for v in views if v.status == PaymentStatus.OVERDUE),
        )

    def promotion_history(
        self,
        student_id: UUID | None = None,
        class_name: str | None = None,
    ) -> tuple[PromotionHistoryEntry, ...]:
        """
        Promotion log, newest first.

        ``class_name`` matches either side of the move.
        """
        stmt = (
            select(StudentPromotion, Student)
            .join(Student, StudentPromotion.student_id == Student.id)
            .order_by(StudentPromotion.created_at.desc(), Student.roll_no)
        )
        if student_id is not None:
            stmt = stmt.where(StudentPromotion.student_id == student_id)
        if class_name is not None:
            stmt = stmt.where(
                or_(
                    StudentPromotion.old_class == class_name,
                    StudentPromotion.new_class == class_name,
                )
            )

        return tuple(
            PromotionHistoryEntry(
                id=row.id,
                student_id=student.id,
                roll_no=student.roll_no,
                name=student.name,
                action=row.action,
                old_class=row.old_class,
                new_class=row.new_class,
                old_program=row.old_program,
                new_program=row.new_program,
                old_session=row.old_session,
                new_session=row.new_session,
                promoted_by_id=row.promoted_by_id,
                recorded_at=row.created_at,
            )
            for row, student in self.session.execute(stmt).all()
        )

    # -------------------------------------------------------------------------
    # Income report
    # -------------------------------------------------------------------------

    def income_report(
        self,
        kind: IncomeReportKind | str,
        *,
        month: str | None = None,
        year: int | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> IncomeReport:
        """
        Paid fee income against paid salaries plus non-salary expenses.

        Args:
            kind: MONTHLY (needs ``month``), YEARLY (needs ``year``) or
                CUSTOM (needs ``start`` and ``end``; a period is included
                when its first day falls inside [start, end]).

        Raises:
            ValueError: A required argument for ``kind`` is missing.
            InvalidPeriodError: Malformed ``month``.
        """
        kind = IncomeReportKind(kind)
        matches = self._period_filter(kind, month, year, start, end)

        fees = [
            f for f in self.session.execute(
                select(Fee).where(Fee.paid == True)  # noqa: E712
            ).scalars()
            if matches(f.month)
        ]
        salaries = [
            s for s in self.session.execute(
                select(Salary).where(Salary.paid == True)  # noqa: E712
            ).scalars()
            if matches(s.month)
        ]
        expenses = [
            e for e in self.session.execute(
                select(Expense).where(Expense.salary_id.is_(None))
            ).scalars()
            if matches(e.month)
        ]

        breakdown: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for expense in expenses:
            breakdown[expense.category] += expense.amount

        months = sorted(
            {r.month for r in (*fees, *salaries, *expenses)},
            key=lambda m: parse_period(m) or Period(1, 1),
        )
        return IncomeReport(
            kind=kind,
            months=tuple(months),
            fee_income=_total(fees),
            salary_expense=_total(salaries),
            other_expense=_total(expenses),
            expense_breakdown=dict(breakdown),
        )

    @staticmethod
    def _period_filter(
        kind: IncomeReportKind,
        month: str | None,
        year: int | None,
        start: date | None,
        end: date | None,
    ) -> Callable[[str], bool]:
        if kind == IncomeReportKind.MONTHLY:
            if not month:
                raise ValueError("month is required for a monthly report")
            key = Period.parse(month).key
            return lambda m: m == key
        if kind == IncomeReportKind.YEARLY:
            if year is None:
                raise ValueError("year is required for a yearly report")

            def in_year(m: str) -> bool:
                period = parse_period(m)
                return period is not None and period.year == int(year)

            return in_year
        if start is None or end is None:
            raise ValueError("start and end are required for a custom report")

        def in_range(m: str) -> bool:
            period = parse_period(m)
            return period is not None and start <= period.first_day <= end

        return in_range

    # -------------------------------------------------------------------------
    # Overview
    # -------------------------------------------------------------------------

    def overview(self) -> FinancialOverview:
        now = self._clock.now()
        current = Period.from_date(now)

        active_students = self.session.execute(
            select(func.count(Student.id)).where(
                Student.status == StudentStatus.ACTIVE.value
            )
        ).scalar_one()
        employees = self.session.execute(select(func.count(Employee.id))).scalar_one()

        fees = self.session.execute(select(Fee)).scalars().all()
        salaries = self.session.execute(select(Salary)).scalars().all()
        other = self.session.execute(
            select(Expense).where(Expense.salary_id.is_(None))
        ).scalars().all()

        return FinancialOverview(
            as_of=now.date(),
            current_month=current.key,
            active_students=active_students,
            employees=employees,
            fees_collected=_total(f for f in fees if f.paid),
            fees_outstanding=_total(f for f in fees if not f.paid),
            fees_overdue=_total(f for f in fees if not f.paid and is_past(f.month, current)),
            salaries_paid=_total(s for s in salaries if s.paid),
            salaries_outstanding=_total(s for s in salaries if not s.paid),
            other_expenses=_total(other),
        )


def _chronological(view: SalaryView) -> tuple[bool, Period]:
    period = parse_period(view.month)
    return (period is None, period or Period(1, 1))
