"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Fees and salaries are the school's receivables and payables.  Once a record
is issued, the facts it was issued under must not drift, and once it is paid
the payment must not be silently undone:

  - A fee's owner, month and classification snapshot are write-once.  The
    snapshot is what past fees are reported under after the student moves on.
  - A paid fee or salary is frozen: amount, paid flag, paid date and payer.
    There is no paid -> unpaid transition.
  - A salary's mirror expense may only move paid false -> true, and only
    once its salary is paid.
  - Promotion history is append-only.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE statements reach the database:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A failing check aborts the flush; the database is never modified.  The
previous value of ``paid`` is always available because the column is mapped
with ``active_history=True``.

The rule "amount may change only for current or future months" depends on
the clock and is enforced by ReclassificationService, not here.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable                      | Fields
------------------|-------------------------------------|------------------------------
Fee               | Always                              | student_id, month, historical_*
Fee               | Once paid                           | amount, paid, paid_date, paid_by_id
Salary            | Always                              | employee_id, month
Salary            | Once paid                           | amount, paid, paid_date, paid_by_id
Expense (mirror)  | Always                              | paid (follows its salary)
StudentPromotion  | Always                              | every column

created_at/updated_at are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

Called once at startup (the batch runner and the test suite both do):

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, select
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"created_at", "updated_at"})

PAYMENT_FIELDS = ("amount", "paid", "paid_date", "paid_by_id")

FEE_WRITE_ONCE_FIELDS = (
    "student_id",
    "month",
    "historical_class",
    "historical_program",
    "historical_section",
    "historical_session",
)

SALARY_WRITE_ONCE_FIELDS = ("employee_id", "month")


def _blocked(entity_type: str, target, field: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _was_paid(target) -> bool:
    """Value of ``paid`` before the pending flush."""
    hist = get_history(target, "paid")
    if hist.deleted:
        return bool(hist.deleted[0])
    if hist.unchanged:
        return bool(hist.unchanged[0])
    return False


def _check_write_once(entity_type: str, target, fields) -> None:
    for field in fields:
        if get_history(target, field).has_changes():
            raise _blocked(
                entity_type,
                target,
                field,
                f"Field '{field}' is write-once",
            )


def _check_payment_frozen(entity_type: str, target) -> None:
    if not _was_paid(target):
        return
    for field in PAYMENT_FIELDS:
        if get_history(target, field).has_changes():
            raise _blocked(
                entity_type,
                target,
                field,
                f"Cannot modify field '{field}' on a paid {entity_type.lower()}",
            )


# =============================================================================
# Fee
# =============================================================================


def _check_fee_immutability(mapper, connection, target):
    """Block snapshot/owner/month changes always, and payment changes once paid."""
    _check_write_once("Fee", target, FEE_WRITE_ONCE_FIELDS)
    _check_payment_frozen("Fee", target)


# =============================================================================
# Salary
# =============================================================================


def _check_salary_immutability(mapper, connection, target):
    _check_write_once("Salary", target, SALARY_WRITE_ONCE_FIELDS)
    _check_payment_frozen("Salary", target)


# =============================================================================
# Expense (salary mirror)
# =============================================================================


def _check_expense_immutability(mapper, connection, target):
    """A salary mirror follows its salary: paid only after it, never unpaid."""
    if target.salary_id is None:
        return
    hist = get_history(target, "paid")
    if not (hist.deleted and hist.added):
        return
    if hist.deleted[0] and not hist.added[0]:
        raise _blocked(
            "Expense",
            target,
            "paid",
            "Salary mirror expense cannot move from paid to unpaid",
        )
    if hist.added[0] and not hist.deleted[0]:
        from ledger_kernel.models import Salary

        salary_paid = connection.scalar(
            select(Salary.paid).where(Salary.id == target.salary_id)
        )
        if not salary_paid:
            raise _blocked(
                "Expense",
                target,
                "paid",
                "Salary mirror expense cannot be paid before its salary",
            )


# =============================================================================
# StudentPromotion
# =============================================================================


def _check_promotion_immutability(mapper, connection, target):
    """Promotion history is append-only."""
    for prop in mapper.column_attrs:
        if prop.key in AUDIT_FIELDS:
            continue
        if get_history(target, prop.key).has_changes():
            raise _blocked(
                "StudentPromotion",
                target,
                prop.key,
                "Promotion history is append-only",
            )


_LISTENERS = (
    ("Fee", "before_update", _check_fee_immutability),
    ("Salary", "before_update", _check_salary_immutability),
    ("Expense", "before_update", _check_expense_immutability),
    ("StudentPromotion", "before_update", _check_promotion_immutability),
)


def _resolve_targets():
    from ledger_kernel import models

    return [
        (getattr(models, name), event_name, fn)
        for name, event_name, fn in _LISTENERS
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left in place.
    """
    for target, event_name, fn in _resolve_targets():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must write a forbidden state.
    """
    for target, event_name, fn in _resolve_targets():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
