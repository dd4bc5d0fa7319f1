"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the CRUD layer, the scheduler, reports) must react to lifecycle
failures precisely. Every error therefore:
  1. Has a TYPED exception class (catch by type, not by message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (ids, periods, programs) as attributes

Example:
    try:
        payments.mark_fee_paid(fee_id, actor_id)
    except AlreadyPaidError as e:
        api_response(code=e.code, record_id=e.record_id, paid_date=e.paid_date)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerError:

    LedgerError (base)
    |
    +-- NotFoundError
    |   +-- StudentNotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- SchoolClassNotFoundError
    |   +-- FeeNotFoundError
    |   +-- SalaryNotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- RecordNotFoundError
    |
    +-- ConfigurationGapError
    |   +-- ProgramFeeNotFoundError
    |
    +-- PeriodError
    |   +-- InvalidPeriodError
    |
    +-- RecordStateError
    |   +-- AlreadyPaidError
    |   +-- ClosedRecordError
    |   +-- DuplicatePeriodRecordError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- SchedulerError
        +-- SchedulerAlreadyRunningError

===============================================================================
HANDLING TAXONOMY
===============================================================================

    ConfigurationGapError      -> entity skipped, reported in run summary
    NotFoundError              -> surfaced to caller, no retry
    InvalidPeriodError         -> strict boundaries only; lenient parsing
                                  treats a bad key as non-comparable
    DuplicatePeriodRecordError -> manual creation only; generation treats
                                  an existing record as success
    AlreadyPaidError           -> first payment wins, state untouched
    ImmutabilityViolationError -> flush aborted, nothing written

===============================================================================
"""


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


# Not-found exceptions


class NotFoundError(LedgerError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class StudentNotFoundError(NotFoundError):
    """Student with given ID was not found."""

    code: str = "STUDENT_NOT_FOUND"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student not found: {student_id}")


class EmployeeNotFoundError(NotFoundError):
    """Employee with given ID was not found."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


class SchoolClassNotFoundError(NotFoundError):
    """No class is registered under the given name."""

    code: str = "SCHOOL_CLASS_NOT_FOUND"

    def __init__(self, class_name: str):
        self.class_name = class_name
        super().__init__(f"Class not found: {class_name}")


class FeeNotFoundError(NotFoundError):
    """Fee with given ID was not found."""

    code: str = "FEE_NOT_FOUND"

    def __init__(self, fee_id: str):
        self.fee_id = fee_id
        super().__init__(f"Fee not found: {fee_id}")


class SalaryNotFoundError(NotFoundError):
    """Salary with given ID was not found."""

    code: str = "SALARY_NOT_FOUND"

    def __init__(self, salary_id: str):
        self.salary_id = salary_id
        super().__init__(f"Salary not found: {salary_id}")


class ExpenseNotFoundError(NotFoundError):
    """Expense with given ID was not found."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class RecordNotFoundError(NotFoundError):
    """Neither a fee nor a salary exists with the given ID."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"No fee or salary record found: {record_id}")


# Configuration gaps


class ConfigurationGapError(LedgerError):
    """Reference data needed to price or generate a record is missing."""

    code: str = "CONFIGURATION_GAP"


class ProgramFeeNotFoundError(ConfigurationGapError):
    """No ProgramFee row exists for the program."""

    code: str = "PROGRAM_FEE_NOT_FOUND"

    def __init__(self, program: str):
        self.program = program
        super().__init__(f"No program fee configured for program: {program}")


# Period exceptions


class PeriodError(LedgerError):
    """Base exception for period-key errors."""

    code: str = "PERIOD_ERROR"


class InvalidPeriodError(PeriodError):
    """A period key does not have the "<MonthName> <Year>" shape."""

    code: str = "INVALID_PERIOD"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Invalid period key: {key!r}")


# Record state exceptions


class RecordStateError(LedgerError):
    """Base exception for illegal record state transitions."""

    code: str = "RECORD_STATE_ERROR"


class AlreadyPaidError(RecordStateError):
    """
    The record has already been marked paid.

    The original paid_date and paid_by_id are preserved.
    """

    code: str = "ALREADY_PAID"

    def __init__(self, record_type: str, record_id: str, paid_date=None):
        self.record_type = record_type
        self.record_id = record_id
        self.paid_date = paid_date
        super().__init__(f"{record_type} {record_id} is already paid")


class ClosedRecordError(RecordStateError):
    """
    The record can no longer be repriced.

    Only unpaid records for the current or a future period accept a new amount.
    """

    code: str = "CLOSED_RECORD"

    def __init__(self, record_type: str, record_id: str, month: str, reason: str):
        self.record_type = record_type
        self.record_id = record_id
        self.month = month
        self.reason = reason
        super().__init__(
            f"{record_type} {record_id} for {month} cannot be repriced: {reason}"
        )


class DuplicatePeriodRecordError(RecordStateError):
    """A record already exists for the owner and period."""

    code: str = "DUPLICATE_PERIOD_RECORD"

    def __init__(self, record_type: str, owner_id: str, month: str):
        self.record_type = record_type
        self.owner_id = owner_id
        self.month = month
        super().__init__(f"{record_type} already exists for {owner_id} in {month}")


# Immutability exceptions


class ImmutabilityError(LedgerError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify a write-once field or reverse a payment.

    Fee snapshots, owners and periods are write-once; paid records are
    frozen; promotion history is append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Scheduler exceptions


class SchedulerError(LedgerError):
    """Base exception for scheduler errors."""

    code: str = "SCHEDULER_ERROR"


class SchedulerAlreadyRunningError(SchedulerError):
    """start() was called while the background thread is alive."""

    code: str = "SCHEDULER_ALREADY_RUNNING"

    def __init__(self, thread_name: str):
        self.thread_name = thread_name
        super().__init__(f"Scheduler thread already running: {thread_name}")
