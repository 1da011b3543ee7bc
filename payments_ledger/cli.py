"""
cli.py - Command-line entry point

Reads a transaction CSV, applies it, and prints the account snapshot.

Run:
    python -m payments_ledger transactions.csv > accounts.csv
    python -m payments_ledger transactions.csv --verbose     # rejections on stderr
    python -m payments_ledger transactions.csv --shards=4    # client-sharded workers

Exit status:
    0  run completed (rejected or skipped rows do not count as failure)
    1  input could not be opened or read; nothing is written to stdout
    2  bad usage
"""

from __future__ import annotations
from typing import List, Optional, Union
import sys

from .core import InputUnavailable
from .decoder import decode_rows
from .engine import LedgerEngine
from .sharding import ShardedLedger
from .snapshot import write_snapshot
from .source import CsvRecordSource


USAGE = "Usage: python -m payments_ledger <transactions.csv> [--verbose] [--shards=N]"

EXIT_OK = 0
EXIT_INPUT_UNAVAILABLE = 1
EXIT_USAGE = 2


def _shard_count(args: List[str]) -> Optional[int]:
    for arg in args:
        if arg.startswith("--shards="):
            value = arg.split("=", 1)[1]
            if not value.isdigit() or int(value) < 1:
                raise ValueError(f"invalid shard count: {value!r}")
            return int(value)
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run one processing pass.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:])

    Returns:
        Process exit status
    """
    args = sys.argv[1:] if argv is None else list(argv)
    verbose = "--verbose" in args
    paths = [arg for arg in args if not arg.startswith("--")]
    unknown = [arg for arg in args
               if arg.startswith("--") and arg != "--verbose" and not arg.startswith("--shards=")]
    if unknown:
        print(f"error: unknown option {unknown[0]!r}\n{USAGE}", file=sys.stderr)
        return EXIT_USAGE
    try:
        shards = _shard_count(args)
    except ValueError as exc:
        print(f"error: {exc}\n{USAGE}", file=sys.stderr)
        return EXIT_USAGE
    if len(paths) != 1:
        print(USAGE, file=sys.stderr)
        return EXIT_USAGE

    ledger: Union[LedgerEngine, ShardedLedger]
    if shards:
        ledger = ShardedLedger(num_shards=shards, verbose=verbose)
    else:
        ledger = LedgerEngine("main", verbose=verbose)

    source = CsvRecordSource(paths[0])
    try:
        stats = ledger.process(decode_rows(source.rows()))
    except InputUnavailable as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_INPUT_UNAVAILABLE

    write_snapshot(ledger, sys.stdout)
    if verbose:
        print(stats.summary(), file=sys.stderr)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
