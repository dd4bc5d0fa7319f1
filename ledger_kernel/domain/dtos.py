"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable results returned by services and selectors: generation run
    summaries, single-record outcomes, cascade and promotion results,
    payment receipts, fee listings and report rows.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Services and
    selectors convert ORM rows into these types at their boundary; callers
    never receive ORM entities.

Invariants enforced:
    - All DTOs are frozen dataclasses; collections are tuples.
    - Monetary fields are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.snapshot import ClassificationSnapshot
from ledger_kernel.domain.status import PaymentStatus


# =============================================================================
# Generation
# =============================================================================


class SkipReason(str, Enum):
    """Why an entity produced no record during a generation run."""

    PROGRAM_FEE_MISSING = "PROGRAM_FEE_MISSING"
    GENERATION_FAILED = "GENERATION_FAILED"


@dataclass(frozen=True)
class SkippedEntity:
    entity_type: str  # "student" or "employee"
    entity_id: UUID
    name: str
    reason: SkipReason
    detail: str = ""


@dataclass(frozen=True)
class OverdueWatchEntry:
    """An active student with unpaid fees from periods before the run period."""

    student_id: UUID
    roll_no: str
    name: str
    overdue_count: int
    overdue_amount: Decimal
    overdue_months: tuple[str, ...]


@dataclass(frozen=True)
class GenerationSummary:
    """
    Outcome of one ``generate_for_period`` run.

    Re-running the same period is safe: a second run reports every record
    under the ``*_existing`` counters and creates nothing.
    """

    period: str
    fees_created: int = 0
    fees_existing: int = 0
    salaries_created: int = 0
    salaries_existing: int = 0
    mirrors_created: int = 0
    mirrors_deferred: int = 0
    skipped: tuple[SkippedEntity, ...] = ()
    overdue: tuple[OverdueWatchEntry, ...] = ()

    @property
    def records_created(self) -> int:
        return self.fees_created + self.salaries_created

    @property
    def overdue_amount(self) -> Decimal:
        return sum((e.overdue_amount for e in self.overdue), Decimal("0"))


@dataclass(frozen=True)
class FeeOutcome:
    fee_id: UUID
    student_id: UUID
    month: str
    amount: Decimal
    created: bool


@dataclass(frozen=True)
class SalaryOutcome:
    salary_id: UUID
    employee_id: UUID
    month: str
    amount: Decimal
    created: bool
    expense_id: UUID | None = None
    mirror_deferred: bool = False


# =============================================================================
# Reclassification and promotion
# =============================================================================


@dataclass(frozen=True)
class CascadeResult:
    """Effect of a class/program change on a student's fees."""

    student_id: UUID
    classification_changed: bool
    repriced_count: int = 0
    new_amount: Decimal | None = None
    current_fee: FeeOutcome | None = None


@dataclass(frozen=True)
class PromotionRecord:
    student_id: UUID
    name: str
    old_class: str
    new_class: str
    old_session: str | None
    new_session: str
    repriced_count: int


@dataclass(frozen=True)
class PromotionBatchResult:
    promoted: tuple[PromotionRecord, ...] = ()
    errors: tuple[str, ...] = ()


# =============================================================================
# Payments
# =============================================================================


@dataclass(frozen=True)
class PaymentReceipt:
    record_type: str  # "fee", "salary" or "expense"
    record_id: UUID
    month: str
    amount: Decimal
    paid_date: datetime
    paid_by_id: UUID
    mirror_synced: bool | None = None  # salaries only


@dataclass(frozen=True)
class MirrorReconciliation:
    mirrors_created: int = 0
    drift_repaired: int = 0
    still_deferred: int = 0


# =============================================================================
# Fee listing
# =============================================================================


@dataclass(frozen=True)
class FeeView:
    id: UUID
    student_id: UUID
    roll_no: str
    student_name: str
    month: str
    amount: Decimal
    paid: bool
    paid_date: datetime | None
    status: PaymentStatus
    display: ClassificationSnapshot


@dataclass(frozen=True)
class FeeSummary:
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    pending_amount: Decimal = Decimal("0")
    overdue_amount: Decimal = Decimal("0")
    total_count: int = 0
    paid_count: int = 0
    pending_count: int = 0
    overdue_count: int = 0


@dataclass(frozen=True)
class FeeListing:
    fees: tuple[FeeView, ...]
    summary: FeeSummary


# =============================================================================
# Reports
# =============================================================================


@dataclass(frozen=True)
class DefaulterEntry:
    student_id: UUID
    roll_no: str
    name: str
    class_name: str
    unpaid_months: tuple[str, ...]
    total_due: Decimal


@dataclass(frozen=True)
class MonthlyFeeReport:
    month: str
    total_amount: Decimal
    paid_amount: Decimal
    unpaid_amount: Decimal
    total_count: int
    paid_count: int
    unpaid_count: int


@dataclass(frozen=True)
class MonthlySalaryReport:
    month: str
    total_amount: Decimal
    paid_amount: Decimal
    unpaid_amount: Decimal
    total_count: int
    paid_count: int
    unpaid_count: int


class IncomeReportKind(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


@dataclass(frozen=True)
class IncomeReport:
    """
    Income vs expenses over a set of periods.

    Expenses are paid salaries plus expenses not linked to a salary; the
    salary mirrors are excluded so salary cost is not counted twice.
    """

    kind: IncomeReportKind
    months: tuple[str, ...]
    fee_income: Decimal
    salary_expense: Decimal
    other_expense: Decimal
    expense_breakdown: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_expense(self) -> Decimal:
        return self.salary_expense + self.other_expense

    @property
    def net_profit(self) -> Decimal:
        return self.fee_income - self.total_expense


@dataclass(frozen=True)
class FinancialOverview:
    as_of: date
    current_month: str
    active_students: int
    employees: int
    fees_collected: Decimal
    fees_outstanding: Decimal
    fees_overdue: Decimal
    salaries_paid: Decimal
    salaries_outstanding: Decimal
    other_expenses: Decimal


# =============================================================================
# Histories
# =============================================================================


@dataclass(frozen=True)
class SalaryView:
    id: UUID
    month: str
    amount: Decimal
    paid: bool
    paid_date: datetime | None
    status: PaymentStatus


@dataclass(frozen=True)
class EmployeeSalaryHistory:
    """Every salary of one employee, oldest month first, with totals."""

    employee_id: UUID
    name: str
    position: str
    salaries: tuple[SalaryView, ...]
    total_amount: Decimal
    paid_amount: Decimal
    unpaid_amount: Decimal
    overdue_amount: Decimal

    @property
    def count(self) -> int:
        return len(self.salaries)


@dataclass(frozen=True)
class PromotionHistoryEntry:
    id: UUID
    student_id: UUID
    roll_no: str
    name: str
    action: str
    old_class: str
    new_class: str
    old_program: str | None
    new_program: str | None
    old_session: str | None
    new_session: str | None
    promoted_by_id: UUID
    recorded_at: datetime
