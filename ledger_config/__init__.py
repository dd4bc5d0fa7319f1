"""
Ledger runtime configuration.

Usage::

    from ledger_config import load_settings

    settings = load_settings()            # defaults + $LEDGER_CONFIG + env
    settings = load_settings("site.yaml")
"""

from ledger_config.loader import LedgerSettings, load_settings, parse_settings

__all__ = ["LedgerSettings", "load_settings", "parse_settings"]
