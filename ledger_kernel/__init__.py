"""
Ledger Kernel - school back-office financial record lifecycle.

Materializes monthly fee and salary records and governs their lifecycle:
- Idempotent per-period generation (one Fee per student, one Salary per employee)
- Frozen classification snapshots on every fee
- Repricing of open fees when a student's class or program changes
- Derived payment status (paid / pending / overdue)
- Salary-to-expense mirror synchronization
"""

__version__ = "0.1.0"
