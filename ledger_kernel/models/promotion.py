"""
Module: ledger_kernel.models.promotion
Responsibility: Append-only history of student promotions, repeats and
    manual reclassifications.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated (db/immutability.py).  They are removed only
      together with their student.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.student import Student


class PromotionAction(str, Enum):
    PROMOTED = "PROMOTED"
    REPEATED = "REPEATED"
    RECLASSIFIED = "RECLASSIFIED"


class StudentPromotion(TrackedBase):
    """One classification change of one student."""

    __tablename__ = "student_promotions"

    __table_args__ = (
        Index("idx_promotion_student", "student_id"),
    )

    student_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )

    old_class: Mapped[str] = mapped_column(String(100), nullable=False)
    new_class: Mapped[str] = mapped_column(String(100), nullable=False)

    old_program: Mapped[str | None] = mapped_column(String(100), nullable=True)
    new_program: Mapped[str | None] = mapped_column(String(100), nullable=True)

    old_session: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_session: Mapped[str | None] = mapped_column(String(20), nullable=True)

    action: Mapped[PromotionAction] = mapped_column(String(20), nullable=False)

    promoted_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    student: Mapped["Student"] = relationship(back_populates="promotions")

    def __repr__(self) -> str:
        return f"<StudentPromotion {self.old_class} -> {self.new_class} ({self.action})>"
