"""
Tests for derived payment status and classification snapshots.
"""

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from ledger_kernel.domain.clock import DeterministicClock, SystemClock
from ledger_kernel.domain.snapshot import ClassificationSnapshot, resolve_display, stamp_snapshot
from ledger_kernel.domain.status import PaymentStatus, derive_status

NOW = datetime(2025, 3, 15, 10, 0)


# =============================================================================
# Payment status
# =============================================================================


class TestDeriveStatus:
    """Status is recomputed from (paid, month, now) on every read."""

    @pytest.mark.parametrize(
        "month,expected",
        [
            ("February 2025", PaymentStatus.OVERDUE),
            ("December 2024", PaymentStatus.OVERDUE),
            ("March 2025", PaymentStatus.PENDING),
            ("April 2025", PaymentStatus.PENDING),
        ],
    )
    def test_unpaid_status_by_month(self, month, expected):
        assert derive_status(False, month, NOW) == expected

    def test_paid_is_paid_regardless_of_month(self):
        assert derive_status(True, "January 2020", NOW) == PaymentStatus.PAID
        assert derive_status(True, "March 2025", NOW) == PaymentStatus.PAID

    def test_unparseable_month_is_pending_never_overdue(self):
        assert derive_status(False, "Admission fee", NOW) == PaymentStatus.PENDING

    def test_status_flips_to_overdue_when_month_rolls(self):
        assert derive_status(False, "March 2025", date(2025, 3, 31)) == PaymentStatus.PENDING
        assert derive_status(False, "March 2025", date(2025, 4, 1)) == PaymentStatus.OVERDUE


# =============================================================================
# Snapshots
# =============================================================================


def _student(**overrides):
    fields = {
        "class_name": "Class 9",
        "program": "Matric",
        "section": "A",
        "session": "2024-2025",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestClassificationSnapshot:

    def test_of_captures_all_fields(self):
        snap = ClassificationSnapshot.of(_student())
        assert snap == ClassificationSnapshot("Class 9", "Matric", "A", "2024-2025")
        assert not snap.is_empty

    def test_snapshot_is_frozen(self):
        snap = ClassificationSnapshot.of(_student())
        with pytest.raises(AttributeError):
            snap.class_name = "Class 10"

    def test_stamp_writes_snapshot_onto_record(self):
        fee = SimpleNamespace(snapshot=None)
        stamp_snapshot(fee, _student(section=None))
        assert fee.snapshot.class_name == "Class 9"
        assert fee.snapshot.section is None

    def test_empty_snapshot(self):
        assert ClassificationSnapshot().is_empty


class TestResolveDisplay:

    def test_past_record_uses_snapshot(self):
        snap = ClassificationSnapshot("Class 9", "Matric", "A", "2024-2025")
        current = ClassificationSnapshot("Class 10", "Matric", "B", "2025-2026")
        assert resolve_display(snap, current, is_past_record=True) == snap

    def test_current_record_uses_current_classification(self):
        snap = ClassificationSnapshot("Class 9", "Matric", "A", "2024-2025")
        current = ClassificationSnapshot("Class 10", "Matric", "B", "2025-2026")
        assert resolve_display(snap, current, is_past_record=False) == current

    def test_past_record_falls_back_per_field(self):
        snap = ClassificationSnapshot(class_name="Class 9")
        current = ClassificationSnapshot("Class 10", "FSc", "B", "2025-2026")
        shown = resolve_display(snap, current, is_past_record=True)
        assert shown == ClassificationSnapshot("Class 9", "FSc", "B", "2025-2026")

    def test_missing_snapshot_falls_back_to_current(self):
        current = ClassificationSnapshot("Class 10", "FSc", "B", "2025-2026")
        assert resolve_display(None, current, is_past_record=True) == current


# =============================================================================
# Clocks
# =============================================================================


class TestClocks:

    def test_deterministic_clock_is_stable_until_advanced(self):
        clock = DeterministicClock(fixed_time=NOW)
        assert clock.now() == clock.now() == NOW
        clock.advance(60)
        assert clock.now() == NOW + timedelta(seconds=60)
        assert clock.tick() == NOW + timedelta(seconds=61)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock(fixed_time=NOW)
        clock.advance(5)
        clock.set_time(datetime(2025, 4, 1))
        assert clock.now() == datetime(2025, 4, 1)

    def test_system_clock_uses_configured_timezone(self):
        clock = SystemClock("Asia/Karachi")
        now = clock.now()
        assert now.utcoffset() == timedelta(hours=5)
        assert clock.now_utc().tzinfo == timezone.utc

    def test_system_clock_defaults_to_utc(self):
        assert SystemClock().tz == timezone.utc
