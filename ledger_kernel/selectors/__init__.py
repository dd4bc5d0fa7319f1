"""Read-only selectors: fee listings and financial reports."""

from ledger_kernel.selectors.fee_selector import FeeSelector
from ledger_kernel.selectors.report_selector import ReportSelector

__all__ = ["FeeSelector", "ReportSelector"]
