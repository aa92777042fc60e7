"""Test fixtures for activity-ledger-server."""

from tests.fixtures.ledger_seed import CATALOG, add_row, seed_catalog, seed_household, token

__all__ = [
    "CATALOG",
    "add_row",
    "seed_catalog",
    "seed_household",
    "token",
]
