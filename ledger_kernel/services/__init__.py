"""Lifecycle services: generation, reclassification, payments and hooks."""

from ledger_kernel.services.generation_service import RecordGenerator
from ledger_kernel.services.lifecycle_hooks import LifecycleHooks
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.reclassification_service import ReclassificationService

__all__ = [
    "LifecycleHooks",
    "PaymentService",
    "ReclassificationService",
    "RecordGenerator",
]
