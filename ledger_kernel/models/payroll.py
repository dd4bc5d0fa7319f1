"""
Module: ledger_kernel.models.payroll
Responsibility: ORM persistence for employees, their monthly salaries, and
    expenses -- including the expense that mirrors each salary.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one Salary per (employee_id, month): uq_salary_employee_month.
    - Salary.amount is fixed from Employee.salary at creation.  Later salary
      changes do NOT reprice generated salaries.
    - At most one mirror Expense per Salary: uq_expense_salary.  While the
      link exists, Expense.paid must equal Salary.paid; it may only move
      false -> true (db/immutability.py).
    - Every Expense records an explicit creator (created_by_id NOT NULL).

Failure modes:
    - IntegrityError on a duplicate salary or a second mirror for a salary.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

SALARY_EXPENSE_CATEGORY = "Salary"


class Employee(TrackedBase):
    """An employee.  Every employee is billed a salary each month."""

    __tablename__ = "employees"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    position: Mapped[str] = mapped_column(String(100), nullable=False)

    # Current monthly salary; copied onto each generated Salary
    salary: Mapped[Decimal] = mapped_column(nullable=False)

    salaries: Mapped[list["Salary"]] = relationship(
        back_populates="employee",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Employee {self.name} ({self.position})>"


class Salary(TrackedBase):
    """One employee's salary for one month."""

    __tablename__ = "salaries"

    __table_args__ = (
        UniqueConstraint("employee_id", "month", name="uq_salary_employee_month"),
        Index("idx_salary_month_paid", "month", "paid"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )

    month: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False, active_history=True)

    paid: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        active_history=True,
    )

    paid_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    paid_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    employee: Mapped["Employee"] = relationship(back_populates="salaries")

    # The mirror is owned by its salary and goes with it
    mirror_expense: Mapped["Expense | None"] = relationship(
        back_populates="salary",
        cascade="all, delete-orphan",
        uselist=False,
    )

    def __repr__(self) -> str:
        state = "paid" if self.paid else "unpaid"
        return f"<Salary {self.month} {self.amount} ({state})>"


class Expense(TrackedBase):
    """
    A school expense.

    When ``salary_id`` is set the expense is the ledger mirror of that salary
    and is excluded from expense totals that already count salaries.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        UniqueConstraint("salary_id", name="uq_expense_salary"),
        Index("idx_expense_month", "month"),
    )

    category: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    month: Mapped[str] = mapped_column(String(20), nullable=False)

    paid: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        active_history=True,
    )

    salary_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("salaries.id", ondelete="CASCADE"),
        nullable=True,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    salary: Mapped["Salary | None"] = relationship(back_populates="mirror_expense")

    def __repr__(self) -> str:
        return f"<Expense {self.category} {self.month} {self.amount}>"
