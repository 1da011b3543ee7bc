"""
Core types for the payments ledger.

This module provides the foundational data structures used by the engine:
1. Protocols: LedgerView for read-only access to account state
2. Immutable data structures: Amount, TransactionRecord, Account
3. Enums: TransactionKind, Outcome
4. Exceptions: LedgerError and domain-specific error types
5. ProcessingStats: per-run outcome accounting
6. Record factories: deposit() and withdrawal()

Monetary values are fixed-point: an Amount stores an integer count of
ten-thousandths. Decimal is only used to convert to and from text, so
balances never accumulate binary floating-point error.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decimal is only used at the text boundary (parsing and formatting), but the
# context is still pinned at module load so conversions are deterministic.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
#   - prec=50: far more digits than the widest representable amount
#   - rounding=ROUND_HALF_EVEN: never relied on, conversions are exact
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Fractional digits carried by every amount.
AMOUNT_DECIMAL_PLACES = 4

# Number of scaled units in 1.0000.
AMOUNT_SCALE = 10 ** AMOUNT_DECIMAL_PLACES

# Smallest representable step, Decimal("0.0001").
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_DECIMAL_PLACES)

# Scaled amounts must fit in a signed 64-bit integer.
MAX_AMOUNT_UNITS = 2 ** 63 - 1
_MAX_UNITS_DIGITS = len(str(MAX_AMOUNT_UNITS))

# Identifier ranges (u16 client ids, u32 transaction ids).
CLIENT_ID_MAX = 2 ** 16 - 1
TRANSACTION_ID_MAX = 2 ** 32 - 1


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class AmountOverflow(LedgerError):
    """Raised when fixed-point arithmetic leaves the representable range."""
    pass


class InputUnavailable(LedgerError):
    """Raised when the input stream cannot be opened or read. Fatal for the run."""
    pass


class ParseError(LedgerError):
    """
    A raw input row that could not be decoded into a TransactionRecord.

    Parse errors are per-row and never fatal: the row is skipped and counted.

    Attributes:
        field: Name of the field that failed ("row" for a wrong field count).
        reason: Human-readable description of the problem.
        line_number: Line in the input where the row started, if known.
    """

    def __init__(self, field: str, reason: str, line_number: Optional[int] = None):
        self.field = field
        self.reason = reason
        self.line_number = line_number
        location = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"{location}{field}: {reason}")


# ============================================================================
# ENUMS
# ============================================================================

class TransactionKind(Enum):
    """Closed set of transaction types the engine understands."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class Outcome(Enum):
    """
    Result of applying one record to the ledger.

    APPLIED: The record's effect is now part of the account state.
    DUPLICATE_TRANSACTION: The transaction id was already applied.
    INSUFFICIENT_FUNDS: A withdrawal exceeded the available balance.
    ACCOUNT_LOCKED: The client's account no longer accepts changes.
    AMOUNT_OVERFLOW: The resulting balance would not be representable.

    Every value other than APPLIED leaves all state untouched.
    """
    APPLIED = "applied"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ACCOUNT_LOCKED = "account_locked"
    AMOUNT_OVERFLOW = "amount_overflow"

    @property
    def is_rejection(self) -> bool:
        return self is not Outcome.APPLIED


# ============================================================================
# AMOUNT
# ============================================================================

@dataclass(frozen=True, slots=True, order=True)
class Amount:
    """
    Fixed-point monetary value with four fractional digits.

    Attributes:
        units: Integer count of ten-thousandths (Amount(15000) is 1.5000).

    Arithmetic is exact integer addition and subtraction. Any result outside
    +/- MAX_AMOUNT_UNITS raises AmountOverflow instead of wrapping.
    """
    units: int = 0

    def __post_init__(self):
        if isinstance(self.units, bool) or not isinstance(self.units, int):
            raise ValueError(f"Amount units must be int, got {type(self.units)}")
        if abs(self.units) > MAX_AMOUNT_UNITS:
            raise AmountOverflow(
                f"{self.units} scaled units outside +/-{MAX_AMOUNT_UNITS}"
            )

    @classmethod
    def from_decimal(cls, value: Decimal) -> Amount:
        """
        Convert a Decimal exactly.

        Works on the digit tuple rather than Decimal arithmetic, so no
        context precision or exponent limit can round or trap the value.

        Raises:
            ValueError: If the value is not finite or needs more than
                        AMOUNT_DECIMAL_PLACES fractional digits.
            AmountOverflow: If the value is too large to represent.
        """
        if not isinstance(value, Decimal):
            raise ValueError(f"Amount value must be Decimal, got {type(value)}")
        if not value.is_finite():
            raise ValueError(f"Amount must be finite, got {value}")

        sign, digits, exponent = value.as_tuple()
        if not any(digits):
            return cls(0)

        digits = list(digits)
        while exponent < -AMOUNT_DECIMAL_PLACES and digits[-1] == 0:
            digits.pop()
            exponent += 1
        if exponent < -AMOUNT_DECIMAL_PLACES:
            raise ValueError(
                f"{value} has more than {AMOUNT_DECIMAL_PLACES} fractional digits"
            )

        # digits of the scaled integer, checked before building it
        shift = exponent + AMOUNT_DECIMAL_PLACES
        if len(digits) + shift > _MAX_UNITS_DIGITS:
            raise AmountOverflow(f"{value} is outside +/-{MAX_AMOUNT_UNITS} scaled units")

        units = int("".join(map(str, digits))) * 10 ** shift
        return cls(-units if sign else units)

    @classmethod
    def parse(cls, text: str) -> Amount:
        """Parse a decimal string such as "1.5" or "0.0001"."""
        try:
            value = Decimal(text.strip())
        except InvalidOperation:
            raise ValueError(f"Not a decimal number: {text!r}") from None
        return cls.from_decimal(value)

    def to_decimal(self) -> Decimal:
        """Return the value as a Decimal with exactly four fractional digits."""
        return Decimal(self.units).scaleb(-AMOUNT_DECIMAL_PLACES).quantize(AMOUNT_QUANTUM)

    def is_negative(self) -> bool:
        return self.units < 0

    def __add__(self, other: Amount) -> Amount:
        if not isinstance(other, Amount):
            return NotImplemented
        return Amount(self.units + other.units)

    def __sub__(self, other: Amount) -> Amount:
        if not isinstance(other, Amount):
            return NotImplemented
        return Amount(self.units - other.units)

    def __str__(self) -> str:
        return format(self.to_decimal(), "f")

    def __repr__(self) -> str:
        return f"Amount({self})"


ZERO = Amount(0)


def to_amount(value: Union[Amount, Decimal, str, int]) -> Amount:
    """
    Coerce a caller-supplied value to an Amount.

    Integers are whole currency units (to_amount(2) is 2.0000). Floats are
    refused because their binary value rarely matches the written one.
    """
    if isinstance(value, Amount):
        return value
    if isinstance(value, Decimal):
        return Amount.from_decimal(value)
    if isinstance(value, str):
        return Amount.parse(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return Amount(value * AMOUNT_SCALE)
    raise ValueError(f"Cannot convert {type(value).__name__} to Amount; use str or Decimal")


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

def _check_id(name: str, value: int, maximum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be int, got {type(value)}")
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} must be in [0, {maximum}], got {value}")


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """
    One decoded input row.

    Attributes:
        kind: Deposit or withdrawal.
        client_id: Account the record applies to (created on first use).
        transaction_id: Globally unique id; the idempotency key.
        amount: Non-negative fixed-point amount.

    This class is immutable (frozen=True) and memory-optimized (slots=True).
    All fields are validated in __post_init__.
    """
    kind: TransactionKind
    client_id: int
    transaction_id: int
    amount: Amount

    def __post_init__(self):
        if not isinstance(self.kind, TransactionKind):
            raise ValueError(f"kind must be TransactionKind, got {self.kind!r}")
        _check_id("client_id", self.client_id, CLIENT_ID_MAX)
        _check_id("transaction_id", self.transaction_id, TRANSACTION_ID_MAX)
        if not isinstance(self.amount, Amount):
            raise ValueError(f"amount must be Amount, got {type(self.amount)}")
        if self.amount.is_negative():
            raise ValueError(f"amount cannot be negative, got {self.amount}")

    def __repr__(self) -> str:
        return (f"{self.kind.value}(client={self.client_id}, "
                f"tx={self.transaction_id}, amount={self.amount})")


@dataclass(frozen=True, slots=True)
class Account:
    """
    Balance state of a single client.

    Attributes:
        client_id: Owner of the account.
        available: Funds that can be withdrawn right now.
        held: Reserved funds. Always zero for deposits and withdrawals.
        locked: Frozen accounts reject every further record. Always False
                for deposits and withdrawals.

    Accounts are immutable values; the engine swaps in a new instance on
    every change, so an Account handed to a caller never changes under it.
    """
    client_id: int
    available: Amount = ZERO
    held: Amount = ZERO
    locked: bool = False

    def __post_init__(self):
        _check_id("client_id", self.client_id, CLIENT_ID_MAX)
        for name in ("available", "held"):
            value = getattr(self, name)
            if not isinstance(value, Amount):
                raise ValueError(f"{name} must be Amount, got {type(value)}")
            if value.is_negative():
                raise ValueError(f"{name} balance cannot be negative, got {value}")
        if self.available.units + self.held.units > MAX_AMOUNT_UNITS:
            raise AmountOverflow(f"total balance of client {self.client_id} overflows")

    @property
    def total(self) -> Amount:
        return self.available + self.held


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to account state.

    Implemented by LedgerEngine and ShardedLedger; consumed by the snapshot
    emitter, which therefore works with either.
    """

    def get_account(self, client_id: int) -> Optional[Account]:
        """Return the client's account, or None if it was never referenced."""
        ...

    def list_clients(self) -> List[int]:
        """Return all known client ids in ascending order."""
        ...

    def accounts(self) -> List[Account]:
        """Return all accounts in ascending client id order."""
        ...


# ============================================================================
# OUTCOME ACCOUNTING
# ============================================================================

@dataclass
class ProcessingStats:
    """
    Counters for one processing run.

    Attributes:
        processed: Records that reached apply().
        applied: Records whose effect was applied.
        skipped: Rows dropped by the decoder.
        rejected: Count of rejected records per Outcome.
    """
    processed: int = 0
    applied: int = 0
    skipped: int = 0
    rejected: Dict[Outcome, int] = field(default_factory=dict)

    def record(self, outcome: Outcome) -> None:
        self.processed += 1
        if outcome is Outcome.APPLIED:
            self.applied += 1
        else:
            self.rejected[outcome] = self.rejected.get(outcome, 0) + 1

    def record_skip(self) -> None:
        self.skipped += 1

    @property
    def total_rejected(self) -> int:
        return sum(self.rejected.values())

    def merge(self, other: ProcessingStats) -> ProcessingStats:
        """Return a new ProcessingStats holding the sum of both."""
        rejected = dict(self.rejected)
        for outcome, count in other.rejected.items():
            rejected[outcome] = rejected.get(outcome, 0) + count
        return ProcessingStats(
            processed=self.processed + other.processed,
            applied=self.applied + other.applied,
            skipped=self.skipped + other.skipped,
            rejected=rejected,
        )

    def copy(self) -> ProcessingStats:
        return ProcessingStats(self.processed, self.applied, self.skipped, dict(self.rejected))

    def summary(self) -> str:
        parts = [f"processed={self.processed}", f"applied={self.applied}",
                 f"skipped={self.skipped}"]
        for outcome in Outcome:
            if outcome in self.rejected:
                parts.append(f"{outcome.value}={self.rejected[outcome]}")
        return " ".join(parts)


# ============================================================================
# RECORD FACTORIES
# ============================================================================

def deposit(client_id: int, transaction_id: int,
            amount: Union[Amount, Decimal, str, int]) -> TransactionRecord:
    """Create a deposit record. Amount accepts Amount, Decimal, str or whole int."""
    return TransactionRecord(TransactionKind.DEPOSIT, client_id, transaction_id, to_amount(amount))


def withdrawal(client_id: int, transaction_id: int,
               amount: Union[Amount, Decimal, str, int]) -> TransactionRecord:
    """Create a withdrawal record. Amount accepts Amount, Decimal, str or whole int."""
    return TransactionRecord(TransactionKind.WITHDRAWAL, client_id, transaction_id, to_amount(amount))
