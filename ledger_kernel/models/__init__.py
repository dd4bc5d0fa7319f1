"""ORM models for the ledger kernel."""

from ledger_kernel.models.fee import Fee
from ledger_kernel.models.payroll import (
    SALARY_EXPENSE_CATEGORY,
    Employee,
    Expense,
    Salary,
)
from ledger_kernel.models.promotion import PromotionAction, StudentPromotion
from ledger_kernel.models.reference import ProgramFee, SchoolClass
from ledger_kernel.models.student import Student, StudentStatus

__all__ = [
    "Employee",
    "Expense",
    "Fee",
    "ProgramFee",
    "PromotionAction",
    "SALARY_EXPENSE_CATEGORY",
    "Salary",
    "SchoolClass",
    "Student",
    "StudentPromotion",
    "StudentStatus",
]
