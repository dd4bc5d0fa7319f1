"""
ClassificationSnapshot -- the student's classification frozen onto a fee.

Responsibility:
    Value type capturing (class, program, section, session) at the moment a
    Fee is created, plus the display rule that decides which classification
    a fee is reported under.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Mapped onto Fee as an ORM composite
    (models/fee.py); write-once enforcement lives in db/immutability.py.

Invariants enforced:
    - A snapshot is captured exactly once, when the fee is created.  Later
      promotions and edits change the Student, never the snapshot.
    - Past-period fees are displayed under their snapshot; current and
      future fees under the student's current classification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ClassificationSnapshot:
    class_name: str | None = None
    program: str | None = None
    section: str | None = None
    session: str | None = None

    @classmethod
    def of(cls, student: Any) -> ClassificationSnapshot:
        """Capture the current classification of a student-like object."""
        return cls(
            class_name=student.class_name,
            program=student.program,
            section=student.section,
            session=student.session,
        )

    @property
    def is_empty(self) -> bool:
        return not any((self.class_name, self.program, self.section, self.session))


def stamp_snapshot(fee: Any, student: Any) -> ClassificationSnapshot:
    """Write the student's classification onto a not-yet-flushed fee."""
    snapshot = ClassificationSnapshot.of(student)
    fee.snapshot = snapshot
    return snapshot


def resolve_display(
    snapshot: ClassificationSnapshot | None,
    current: ClassificationSnapshot,
    is_past_record: bool,
) -> ClassificationSnapshot:
    """
    Pick the classification a fee is reported under.

    Past records use the snapshot field by field, falling back to the current
    value where the snapshot holds nothing (fees created before snapshots
    existed).  Current and future records always use ``current``.
    """
    if not is_past_record or snapshot is None:
        return current
    return ClassificationSnapshot(
        class_name=snapshot.class_name or current.class_name,
        program=snapshot.program or current.program,
        section=snapshot.section or current.section,
        session=snapshot.session or current.session,
    )
