"""Recurring job entrypoints for the reward engine."""

__all__ = [
    "ledger_audit",
]
