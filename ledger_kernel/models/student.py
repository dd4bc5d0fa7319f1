"""
Module: ledger_kernel.models.student
Responsibility: ORM persistence for students and their mutable classification
    (class, program, section, session).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Only ACTIVE students receive generated fees.
    - Deleting a Student deletes its Fees and promotion history (ORM cascade).
      This is the only path by which a StudentPromotion row may be removed.

Failure modes:
    - IntegrityError on duplicate roll_no.
"""

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from ledger_kernel.models.fee import Fee
    from ledger_kernel.models.promotion import StudentPromotion


class StudentStatus(str, Enum):
    """Enrollment status.  GRADUATED and DROPPED students are not billed."""

    ACTIVE = "ACTIVE"
    GRADUATED = "GRADUATED"
    DROPPED = "DROPPED"


class Student(TrackedBase):
    """
    A student and the classification fees are priced against.

    Contract:
        class_name/program/section/session may change at any time through
        the reclassification path; each change that touches class or program
        reprices the student's open fees.  Fees already issued keep the
        classification frozen into their snapshot.
    """

    __tablename__ = "students"

    __table_args__ = (
        UniqueConstraint("roll_no", name="uq_student_roll_no"),
        Index("idx_student_class_status", "class_name", "status"),
    )

    roll_no: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    class_name: Mapped[str] = mapped_column(String(100), nullable=False)

    program: Mapped[str] = mapped_column(String(100), nullable=False)

    section: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Academic session label, e.g. "2025-2026"
    session: Mapped[str | None] = mapped_column(String(20), nullable=True)

    status: Mapped[StudentStatus] = mapped_column(
        String(20),
        default=StudentStatus.ACTIVE,
        nullable=False,
    )

    fees: Mapped[list["Fee"]] = relationship(
        back_populates="student",
        cascade="all, delete-orphan",
    )

    promotions: Mapped[list["StudentPromotion"]] = relationship(
        back_populates="student",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Student {self.roll_no}: {self.name} ({self.class_name})>"
