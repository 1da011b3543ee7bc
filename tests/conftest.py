"""
conftest.py - Shared pytest fixtures for payments ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Engines (empty, test-mode, funded)
- The documented end-to-end input
- A helper writing CSV input files to a temporary directory
"""

import pytest

from payments_ledger import LedgerEngine, deposit


# =============================================================================
# INPUT DATA
# =============================================================================

DOCUMENTED_INPUT = (
    "type, client, tx, amount\n"
    "deposit, 1, 1, 1.0\n"
    "deposit, 2, 2, 2.0\n"
    "deposit, 1, 3, 2.0\n"
    "withdrawal, 1, 4, 1.5\n"
    "withdrawal, 2, 5, 2.0\n"
)

DOCUMENTED_OUTPUT = (
    "client,available,held,total,locked\n"
    "1,1.5000,0.0000,1.5000,false\n"
    "2,0.0000,0.0000,0.0000,false\n"
)


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Fresh engine with no accounts."""
    return LedgerEngine("test", verbose=False)


@pytest.fixture
def test_engine():
    """Fresh engine with test-mode helpers enabled."""
    return LedgerEngine("test", verbose=False, test_mode=True)


@pytest.fixture
def funded_engine(engine):
    """Engine where client 1 holds 100.0000 (tx 1) and client 2 holds 50.0000 (tx 2)."""
    engine.apply(deposit(1, 1, "100"))
    engine.apply(deposit(2, 2, "50"))
    return engine


# =============================================================================
# FILE FIXTURES
# =============================================================================

@pytest.fixture
def documented_input():
    return DOCUMENTED_INPUT


@pytest.fixture
def documented_output():
    return DOCUMENTED_OUTPUT


@pytest.fixture
def write_csv(tmp_path):
    """Return a function writing text to a CSV file under tmp_path."""
    def _write(text: str, name: str = "transactions.csv"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write
