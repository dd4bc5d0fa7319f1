"""
Module: ledger_kernel.models.fee
Responsibility: ORM persistence for monthly student fees, including the
    classification snapshot frozen at creation.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/snapshot.py (a pure value type used as the composite class).

Invariants enforced:
    - Exactly one Fee per (student_id, month): uq_fee_student_month.  A
      violation raised during generation means "already exists".
    - student_id, month and the historical_* snapshot columns are write-once
      (db/immutability.py).
    - paid moves false -> true exactly once; once paid, amount, paid_date and
      paid_by_id are frozen (db/immutability.py).
    - Payment status is derived on read (domain/status.py), never stored.

Failure modes:
    - IntegrityError on a second fee for the same student and month.
    - ImmutabilityViolationError on flush of a forbidden change.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, composite, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.snapshot import ClassificationSnapshot

if TYPE_CHECKING:
    from ledger_kernel.models.student import Student


class Fee(TrackedBase):
    """
    One student's fee for one month.

    Contract:
        Created by the record generator (or manual fee entry) with
        paid=False and the student's current classification stamped into
        ``snapshot``.  The amount tracks the student's program fee until the
        month is past or the fee is paid.
    """

    __tablename__ = "fees"

    __table_args__ = (
        UniqueConstraint("student_id", "month", name="uq_fee_student_month"),
        Index("idx_fee_month_paid", "month", "paid"),
    )

    student_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Period key, e.g. "March 2025"
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

    # Classification at creation time
    historical_class: Mapped[str | None] = mapped_column(String(100), nullable=True)
    historical_program: Mapped[str | None] = mapped_column(String(100), nullable=True)
    historical_section: Mapped[str | None] = mapped_column(String(50), nullable=True)
    historical_session: Mapped[str | None] = mapped_column(String(20), nullable=True)

    snapshot: Mapped[ClassificationSnapshot] = composite(
        ClassificationSnapshot,
        historical_class,
        historical_program,
        historical_section,
        historical_session,
    )

    student: Mapped["Student"] = relationship(back_populates="fees")

    def __repr__(self) -> str:
        state = "paid" if self.paid else "unpaid"
        return f"<Fee {self.month} {self.amount} ({state})>"
