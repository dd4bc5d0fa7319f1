"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- In-memory SQLite sessions with per-test rollback
- Reference data (program fees, classes) and student/employee factories
- Service and selector fixtures on a deterministic clock
- Structured log capture

The clock is fixed at 15 March 2025, 10:00, so "March 2025" is the current
period, February and earlier are past, April and later are future.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_kernel.db.engine import build_engine, create_tables, drop_tables
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models import Employee, ProgramFee, SchoolClass, Student, StudentStatus
from ledger_kernel.selectors.fee_selector import FeeSelector
from ledger_kernel.selectors.report_selector import ReportSelector
from ledger_kernel.services.generation_service import RecordGenerator
from ledger_kernel.services.lifecycle_hooks import LifecycleHooks
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.reclassification_service import ReclassificationService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# Clock time for every service fixture
TEST_NOW = datetime(2025, 3, 15, 10, 0, 0)

MATRIC_FEE = Decimal("5000.00")
FSC_FEE = Decimal("7000.00")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, generator):
            generator.generate_for_period("March 2025")
            logs = captured_logs()
            assert any(r["message"] == "generation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory SQLite engine for the entire test session."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    drop_tables(eng)
    eng.dispose()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction that is rolled back at teardown;
    ``session.commit()`` inside a test only releases a savepoint.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(fixed_time=TEST_NOW)


# =============================================================================
# Reference data and factories
# =============================================================================


@pytest.fixture
def program_fees(session) -> dict[str, ProgramFee]:
    """Matric at 5000 and FSc at 7000."""
    fees = {
        "Matric": ProgramFee(program="Matric", fee_amount=MATRIC_FEE),
        "FSc": ProgramFee(program="FSc", fee_amount=FSC_FEE),
    }
    session.add_all(fees.values())
    session.flush()
    return fees


@pytest.fixture
def school_classes(session) -> dict[str, SchoolClass]:
    classes = {
        "Class 9": SchoolClass(name="Class 9", program="Matric"),
        "Class 10": SchoolClass(name="Class 10", program="Matric"),
        "1st Year": SchoolClass(name="1st Year", program="FSc"),
    }
    session.add_all(classes.values())
    session.flush()
    return classes


@pytest.fixture
def create_student(session):
    """Factory for persisted students."""
    counter = iter(range(1, 10_000))

    def _create(
        name: str = "Student",
        class_name: str = "Class 9",
        program: str = "Matric",
        section: str | None = "A",
        session_label: str | None = "2024-2025",
        status: StudentStatus = StudentStatus.ACTIVE,
        roll_no: str | None = None,
    ) -> Student:
        student = Student(
            roll_no=roll_no or f"R-{next(counter):04d}",
            name=name,
            class_name=class_name,
            program=program,
            section=section,
            session=session_label,
            status=status.value,
        )
        session.add(student)
        session.flush()
        return student

    return _create


@pytest.fixture
def create_employee(session):
    """Factory for persisted employees."""

    def _create(
        name: str = "Employee",
        position: str = "Teacher",
        salary: Decimal = Decimal("30000.00"),
    ) -> Employee:
        employee = Employee(name=name, position=position, salary=salary)
        session.add(employee)
        session.flush()
        return employee

    return _create


# =============================================================================
# Service and selector fixtures
# =============================================================================


@pytest.fixture
def generator(session, deterministic_clock, test_actor_id) -> RecordGenerator:
    """RecordGenerator with a configured system actor."""
    return RecordGenerator(session, deterministic_clock, test_actor_id)


@pytest.fixture
def reclassification_service(session, deterministic_clock, generator) -> ReclassificationService:
    return ReclassificationService(session, deterministic_clock, generator)


@pytest.fixture
def payment_service(session, deterministic_clock, test_actor_id) -> PaymentService:
    return PaymentService(session, deterministic_clock, test_actor_id)


@pytest.fixture
def hooks(session, deterministic_clock, test_actor_id) -> LifecycleHooks:
    return LifecycleHooks(session, deterministic_clock, test_actor_id)


@pytest.fixture
def fee_selector(session, deterministic_clock) -> FeeSelector:
    return FeeSelector(session, deterministic_clock)


@pytest.fixture
def report_selector(session, deterministic_clock) -> ReportSelector:
    return ReportSelector(session, deterministic_clock)
