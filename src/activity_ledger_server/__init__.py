"""Household activity ledger with streak bonuses and weekly summaries."""

__version__ = "1.0.0"
