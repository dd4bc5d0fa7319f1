"""
Module: ledger_kernel.models.reference
Responsibility: Reference data that prices and routes students -- the program
    fee price list and the class-to-program mapping.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One ProgramFee per program (uq_program_fee_program).
    - One SchoolClass per class name (uq_school_class_name).

Failure modes:
    - A student whose program has no ProgramFee is skipped by generation and
      reported as a configuration gap; it is never billed zero.
"""

from decimal import Decimal

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class ProgramFee(TrackedBase):
    """Monthly fee charged for a program.  Changes apply to open fees via repricing."""

    __tablename__ = "program_fees"

    __table_args__ = (
        UniqueConstraint("program", name="uq_program_fee_program"),
    )

    program: Mapped[str] = mapped_column(String(100), nullable=False)

    fee_amount: Mapped[Decimal] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ProgramFee {self.program}: {self.fee_amount}>"


class SchoolClass(TrackedBase):
    """A class (grade) and the program its students are billed under."""

    __tablename__ = "school_classes"

    __table_args__ = (
        UniqueConstraint("name", name="uq_school_class_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    program: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<SchoolClass {self.name} ({self.program})>"
