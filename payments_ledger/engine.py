"""
engine.py - Stateful Client Account Ledger

The LedgerEngine is the central state manager for the payments ledger.
It is the only component that mutates account state.

Key responsibilities:
    - Implements the LedgerView protocol for read-only access by the emitter
    - Applies records strictly in delivery order, one at a time
    - Rejects duplicates, overdrafts, locked accounts and overflowing amounts
      without touching state
    - Counts every outcome and keeps applied and rejected records for audit
    - Provides clone() and replay() for state reconstruction
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union
import sys

from .core import (
    # Types
    Account, Amount, TransactionKind, TransactionRecord,
    Outcome, ProcessingStats, ZERO,
    # Exceptions
    LedgerError, AmountOverflow, ParseError,
    # Helpers
    to_amount,
)


# An item of a decoded input stream.
RecordOrError = Union[TransactionRecord, ParseError]


class LedgerEngine:
    """
    Per-client account ledger with idempotent, order-preserving application.

    Implements the LedgerView protocol, so it can be handed straight to
    write_snapshot() once the input is exhausted.

    Design Principles:
        - Never raises from apply(): every per-record failure becomes an
          Outcome and is counted in self.stats.
        - A rejected record changes nothing. Only applied transaction ids
          enter the seen-id registry.

    Thread Safety:
        Not thread-safe. Use ShardedLedger to spread clients over workers.

    Example:
        engine = LedgerEngine("main")
        engine.apply(deposit(1, 1, "1.0"))
        engine.apply(withdrawal(1, 2, "0.5"))
        engine.get_account(1).available   # Amount(0.5000)
    """

    def __init__(self, name: str = "main", verbose: bool = True, test_mode: bool = False):
        """
        Create an engine.

        Args:
            name: Engine identifier (shows up in messages and replay names)
            verbose: Print rejected and skipped records to stderr (default: True)
            test_mode: Allow set_available() and lock_account() (default: False)
        """
        self.name = name
        self._accounts: Dict[int, Account] = {}
        self.seen_transaction_ids: Set[int] = set()
        self.transaction_log: List[TransactionRecord] = []
        self.rejection_log: List[Tuple[TransactionRecord, Outcome]] = []
        self.parse_errors: List[ParseError] = []
        self.stats = ProcessingStats()
        self.verbose = verbose
        self._test_mode = test_mode

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    def get_account(self, client_id: int) -> Optional[Account]:
        """Return the client's account, or None if it was never referenced."""
        return self._accounts.get(client_id)

    def list_clients(self) -> List[int]:
        """List all known client ids in ascending order."""
        return sorted(self._accounts)

    def accounts(self) -> List[Account]:
        """Return every account, ascending by client id."""
        return [self._accounts[client_id] for client_id in sorted(self._accounts)]

    def total_available(self) -> Amount:
        """
        Sum of available balances across all clients.

        Clients are summed in ascending order for a deterministic result.
        """
        total = ZERO
        for account in self.accounts():
            total = total + account.available
        return total

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the ledger's invariants against current state.

        Checks performed:
        1. No negative available or held balance
        2. total == available + held for every account
        3. The seen-id registry holds exactly the logged transaction ids
        4. Conservation: each client's available balance equals applied
           deposits minus applied withdrawals from the transaction log

        Balances changed through the test-mode helpers are not in the log
        and show up as conservation violations.

        Returns:
            Dict with keys:
            - 'valid': bool - True if no violation was found
            - 'violations': List[Dict] - One entry per violation
        """
        violations: List[Dict[str, Any]] = []

        expected: Dict[int, int] = {}
        for record in self.transaction_log:
            sign = 1 if record.kind is TransactionKind.DEPOSIT else -1
            expected[record.client_id] = expected.get(record.client_id, 0) + sign * record.amount.units

        for account in self.accounts():
            if account.available.is_negative():
                violations.append({'client': account.client_id, 'error': 'negative available',
                                   'available': account.available})
            if account.held.is_negative():
                violations.append({'client': account.client_id, 'error': 'negative held',
                                   'held': account.held})
            if account.total.units != account.available.units + account.held.units:
                violations.append({'client': account.client_id, 'error': 'total mismatch',
                                   'total': account.total})
            expected_units = expected.get(account.client_id, 0)
            if account.available.units != expected_units:
                violations.append({
                    'client': account.client_id,
                    'error': 'conservation',
                    'expected': Amount(expected_units),
                    'actual': account.available,
                })

        logged_ids = [record.transaction_id for record in self.transaction_log]
        if len(set(logged_ids)) != len(logged_ids):
            violations.append({'error': 'transaction applied twice'})
        if set(logged_ids) != self.seen_transaction_ids:
            violations.append({
                'error': 'registry mismatch',
                'unregistered': sorted(set(logged_ids) - self.seen_transaction_ids),
                'unlogged': sorted(self.seen_transaction_ids - set(logged_ids)),
            })

        return {
            'valid': len(violations) == 0,
            'violations': violations,
        }

    # ========================================================================
    # RECORD APPLICATION (Mutating)
    # ========================================================================

    def apply(self, record: TransactionRecord) -> Outcome:
        """
        Apply one record to the ledger.

        Order of checks:
        1. Duplicate transaction id -> DUPLICATE_TRANSACTION
        2. Look up or open the client's account
        3. Locked account -> ACCOUNT_LOCKED
        4. Deposit adds to available; withdrawal subtracts, or is rejected
           with INSUFFICIENT_FUNDS when it exceeds available
        5. Unrepresentable result -> AMOUNT_OVERFLOW

        Args:
            record: Decoded transaction record

        Returns:
            Outcome.APPLIED if the record took effect, otherwise the
            rejection reason. Rejections leave all state unchanged.
        """
        outcome = self._apply(record)
        self.stats.record(outcome)

        if outcome is Outcome.APPLIED:
            self.seen_transaction_ids.add(record.transaction_id)
            self.transaction_log.append(record)
        else:
            self.rejection_log.append((record, outcome))
            if self.verbose:
                self._print_rejection(record, outcome)
        return outcome

    def _apply(self, record: TransactionRecord) -> Outcome:
        if record.transaction_id in self.seen_transaction_ids:
            return Outcome.DUPLICATE_TRANSACTION

        account = self._open(record.client_id)
        if account.locked:
            return Outcome.ACCOUNT_LOCKED

        try:
            match record.kind:
                case TransactionKind.DEPOSIT:
                    available = account.available + record.amount
                case TransactionKind.WITHDRAWAL:
                    if record.amount > account.available:
                        return Outcome.INSUFFICIENT_FUNDS
                    available = account.available - record.amount
                case _:
                    raise LedgerError(f"Unhandled transaction kind: {record.kind!r}")
            updated = replace(account, available=available)
        except AmountOverflow:
            return Outcome.AMOUNT_OVERFLOW

        self._accounts[record.client_id] = updated
        return Outcome.APPLIED

    def process(self, stream: Iterable[RecordOrError]) -> ProcessingStats:
        """
        Drain a decoded record stream.

        ParseError items are skipped and counted; records go through apply().
        The stream is consumed once, in order, with no lookahead.

        Args:
            stream: Iterable of TransactionRecord or ParseError items

        Returns:
            The engine's ProcessingStats (cumulative across calls)

        Raises:
            InputUnavailable: If the underlying source fails to read. No
                              output should be produced for such a run.
        """
        for item in stream:
            if isinstance(item, ParseError):
                self.skip(item)
            else:
                self.apply(item)
        return self.stats

    def skip(self, error: ParseError) -> None:
        """Count a row the decoder rejected."""
        self.stats.record_skip()
        self.parse_errors.append(error)
        if self.verbose:
            print(f"SKIPPED [{self.name}]: {error}", file=sys.stderr)

    def _open(self, client_id: int) -> Account:
        """Return the client's account, creating an empty one on first reference."""
        account = self._accounts.get(client_id)
        if account is None:
            account = Account(client_id)
            self._accounts[client_id] = account
        return account

    def _print_rejection(self, record: TransactionRecord, outcome: Outcome) -> None:
        if outcome is Outcome.DUPLICATE_TRANSACTION:
            print(f"⚠️  DUPLICATE [{self.name}]: tx={record.transaction_id} {record!r}",
                  file=sys.stderr)
        else:
            print(f"✗ REJECTED [{self.name}]: {outcome.value}: {record!r}", file=sys.stderr)

    # ========================================================================
    # TEST HELPERS (Mutating, test_mode only)
    # ========================================================================

    def _require_test_mode(self, method: str) -> None:
        if not self._test_mode:
            raise LedgerError(
                f"{method}() is disabled in production mode. "
                "Balances may only change through apply(). "
                "Set test_mode=True when creating LedgerEngine for testing."
            )

    def set_available(self, client_id: int, amount: Union[Amount, str, int]) -> None:
        """
        Set a client's available balance directly.

        WARNING: Bypasses apply(), the transaction log and the seen-id
        registry. Only available in test mode.

        Raises:
            LedgerError: If called when test_mode is False
        """
        self._require_test_mode("set_available")
        account = self._open(client_id)
        self._accounts[client_id] = replace(account, available=to_amount(amount))

    def lock_account(self, client_id: int) -> None:
        """
        Mark a client's account as locked. Only available in test mode.

        No deposit or withdrawal ever locks an account; this exists so the
        ACCOUNT_LOCKED path can be exercised.

        Raises:
            LedgerError: If called when test_mode is False
        """
        self._require_test_mode("lock_account")
        account = self._open(client_id)
        self._accounts[client_id] = replace(account, locked=True)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> LedgerEngine:
        """
        Create an independent copy of this engine.

        Accounts and records are immutable, so copying the containers is
        enough for the clone and the original to evolve separately.
        """
        cloned = LedgerEngine.__new__(LedgerEngine)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned._accounts = dict(self._accounts)
        cloned.seen_transaction_ids = self.seen_transaction_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned.rejection_log = list(self.rejection_log)
        cloned.parse_errors = list(self.parse_errors)
        cloned.stats = self.stats.copy()
        return cloned

    def replay(self) -> LedgerEngine:
        """
        Build a new engine by re-applying the transaction log.

        Every known client is opened first so that accounts which only ever
        saw rejected records still appear. Balances and locks set through
        the test-mode helpers are NOT replayed because they are not part of
        the transaction log.

        Returns:
            New LedgerEngine with replayed state

        Raises:
            LedgerError: If a logged record is rejected during replay
        """
        new_engine = LedgerEngine(
            name=f"{self.name}_replayed",
            verbose=self.verbose,
            test_mode=self._test_mode,
        )
        for client_id in self.list_clients():
            new_engine._open(client_id)

        for record in self.transaction_log:
            outcome = new_engine.apply(record)
            if outcome is not Outcome.APPLIED:
                raise LedgerError(
                    f"Replay failed at tx {record.transaction_id}: {outcome.value}"
                )
        return new_engine

    def __repr__(self) -> str:
        return (f"LedgerEngine({self.name!r}, {len(self._accounts)} accounts, "
                f"{len(self.transaction_log)} applied)")
