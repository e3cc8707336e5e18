"""Gamification scoring, ledger and cross-system reconciliation engine."""

__version__ = "0.1.0"
