"""
FeeSelector -- fee listings with derived status and display classification.

Past fees are listed (and filtered by class) under their frozen snapshot;
current and future fees under the student's current classification.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import FeeListing, FeeSummary, FeeView
from ledger_kernel.domain.period import Period, is_current_or_future, is_past, parse_period
from ledger_kernel.domain.snapshot import ClassificationSnapshot, resolve_display
from ledger_kernel.domain.status import PaymentStatus, derive_status
from ledger_kernel.models import Fee, Student
from ledger_kernel.selectors.base import BaseSelector


class FeeSelector(BaseSelector):
    """Read-only fee queries."""

    def list_fees(
        self,
        *,
        student_id: UUID | None = None,
        paid: bool | None = None,
        month: str | None = None,
        status: PaymentStatus | str | None = None,
        class_name: str | None = None,
        show_past: bool | None = None,
    ) -> FeeListing:
        """
        List fees, newest first, with a summary over the filtered set.

        Args:
            student_id, paid, month: exact-match filters.
            status: derived status to keep.
            class_name: matched against the display class (snapshot class
                for past fees, current class otherwise).
            show_past: True keeps only past-period fees, False only current
                and future ones, None keeps all.  Fees with an unparseable
                month are dropped by either split.
        """
        now = self._clock.now()
        current = Period.from_date(now)

        query = select(Fee, Student).join(Student, Fee.student_id == Student.id)
        if student_id is not None:
            query = query.where(Fee.student_id == student_id)
        if paid is not None:
            query = query.where(Fee.paid == paid)
        if month is not None:
            query = query.where(Fee.month == month)
        rows = self.session.execute(
            query.order_by(Fee.created_at.desc(), Student.roll_no)
        ).all()

        wanted_status = PaymentStatus(status) if status is not None else None
        views: list[FeeView] = []
        for fee, student in rows:
            past = is_past(fee.month, current)
            if show_past is True and not past:
                continue
            if show_past is False and not is_current_or_future(fee.month, current):
                continue

            display = resolve_display(fee.snapshot, ClassificationSnapshot.of(student), past)
            if class_name is not None and display.class_name != class_name:
                continue

            fee_status = derive_status(fee.paid, fee.month, now)
            if wanted_status is not None and fee_status != wanted_status:
                continue

            views.append(
                FeeView(
                    id=fee.id,
                    student_id=student.id,
                    roll_no=student.roll_no,
                    student_name=student.name,
                    month=fee.month,
                    amount=fee.amount,
                    paid=fee.paid,
                    paid_date=fee.paid_date,
                    status=fee_status,
                    display=display,
                )
            )

        return FeeListing(fees=tuple(views), summary=summarize(views))

    def student_history(self, student_id: UUID) -> tuple[FeeView, ...]:
        """All fees of one student in chronological order; unparseable months last."""
        listing = self.list_fees(student_id=student_id)
        return tuple(sorted(listing.fees, key=_chronological))


def _chronological(view: FeeView) -> tuple[bool, Period]:
    period = parse_period(view.month)
    return (period is None, period or Period(1, 1))


def summarize(views) -> FeeSummary:
    """Totals by derived status."""
    paid = [v for v in views if v.status == PaymentStatus.PAID]
    pending = [v for v in views if v.status == PaymentStatus.PENDING]
    overdue = [v for v in views if v.status == PaymentStatus.OVERDUE]
    return FeeSummary(
        total_amount=sum((v.amount for v in views), ZERO),
        paid_amount=sum((v.amount for v in paid), ZERO),
        pending_amount=sum((v.amount for v in pending), ZERO),
        overdue_amount=sum((v.amount for v in overdue), ZERO),
        total_count=len(views),
        paid_count=len(paid),
        pending_count=len(pending),
        overdue_count=len(overdue),
    )
