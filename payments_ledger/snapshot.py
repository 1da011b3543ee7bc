"""
snapshot.py - Final account state output

Reads the account set from any LedgerView once processing is finished and
renders one row per client, ascending by client id, so the output is the
same on every run over the same input.

Output columns: client, available, held, total, locked
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, TextIO
import csv
import io

from .core import Account, Amount, LedgerView


SNAPSHOT_HEADER = ("client", "available", "held", "total", "locked")


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Point-in-time copy of an account, ready for output."""
    client: int
    available: Amount
    held: Amount
    total: Amount
    locked: bool

    @classmethod
    def from_account(cls, account: Account) -> AccountSnapshot:
        return cls(
            client=account.client_id,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked,
        )

    def as_row(self) -> List[str]:
        """Render as output fields: four fractional digits, lowercase boolean."""
        return [
            str(self.client),
            str(self.available),
            str(self.held),
            str(self.total),
            "true" if self.locked else "false",
        ]


def snapshot_rows(view: LedgerView) -> List[AccountSnapshot]:
    """Snapshot every account in ascending client order."""
    accounts = sorted(view.accounts(), key=lambda account: account.client_id)
    return [AccountSnapshot.from_account(account) for account in accounts]


def write_snapshot(view: LedgerView, stream: TextIO) -> int:
    """
    Write the header and one CSV row per account to stream.

    Returns:
        Number of account rows written
    """
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(SNAPSHOT_HEADER)
    rows = snapshot_rows(view)
    for snapshot in rows:
        writer.writerow(snapshot.as_row())
    return len(rows)


def format_snapshot(view: LedgerView) -> str:
    """Return the snapshot CSV as a string."""
    buffer = io.StringIO()
    write_snapshot(view, buffer)
    return buffer.getvalue()
