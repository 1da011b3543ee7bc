"""
payments_ledger - Client Account Ledger

Applies deposit and withdrawal records to per-client accounts and reports
the final balances.

Usage:
    from payments_ledger import (
        LedgerEngine, CsvRecordSource, decode_rows, write_snapshot,
        deposit, withdrawal,
    )

    engine = LedgerEngine("main", verbose=False)

    # Apply records directly
    engine.apply(deposit(1, 1, "1.0"))
    engine.apply(withdrawal(1, 2, "0.25"))

    # Or drain a CSV file (type, client, tx, amount)
    engine.process(decode_rows(CsvRecordSource("transactions.csv").rows()))

    write_snapshot(engine, sys.stdout)
"""

# Core types
from .core import (
    LedgerView,
    Amount,
    TransactionKind,
    TransactionRecord,
    Account,
    Outcome,
    ProcessingStats,
    LedgerError,
    AmountOverflow,
    InputUnavailable,
    ParseError,
    deposit,
    withdrawal,
    to_amount,
    ZERO,
    AMOUNT_DECIMAL_PLACES,
    AMOUNT_SCALE,
    MAX_AMOUNT_UNITS,
    CLIENT_ID_MAX,
    TRANSACTION_ID_MAX,
)

# Engine
from .engine import LedgerEngine

# Input
from .source import (
    RecordSource,
    CsvRecordSource,
    StaticRecordSource,
)
from .decoder import (
    decode_row,
    decode_rows,
    parse_amount,
    INPUT_FIELDS,
)

# Output
from .snapshot import (
    AccountSnapshot,
    snapshot_rows,
    write_snapshot,
    format_snapshot,
    SNAPSHOT_HEADER,
)

# Sharding
from .sharding import ShardedLedger

__all__ = [
    # Core
    'LedgerView', 'Amount', 'TransactionKind', 'TransactionRecord', 'Account',
    'Outcome', 'ProcessingStats',
    'LedgerError', 'AmountOverflow', 'InputUnavailable', 'ParseError',
    'deposit', 'withdrawal', 'to_amount', 'ZERO',
    'AMOUNT_DECIMAL_PLACES', 'AMOUNT_SCALE', 'MAX_AMOUNT_UNITS',
    'CLIENT_ID_MAX', 'TRANSACTION_ID_MAX',
    # Engine
    'LedgerEngine',
    # Input
    'RecordSource', 'CsvRecordSource', 'StaticRecordSource',
    'decode_row', 'decode_rows', 'parse_amount', 'INPUT_FIELDS',
    # Output
    'AccountSnapshot', 'snapshot_rows', 'write_snapshot', 'format_snapshot',
    'SNAPSHOT_HEADER',
    # Sharding
    'ShardedLedger',
]

__version__ = '1.0.0'
