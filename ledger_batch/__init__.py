"""
Batch layer: the daily generation scheduler and its command-line runner.

Run with ``python3 -m ledger_batch``.
"""

from ledger_batch.scheduler import GenerationScheduler

__all__ = ["GenerationScheduler"]
