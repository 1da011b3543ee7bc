"""
decoder.py - Row decoding for transaction input

Turns raw field lists into typed TransactionRecord values. Decoding is pure:
it never consults ledger state, so a malformed row is stopped here and never
reaches the engine.

Expected field order: type, client, tx, amount.
"""

from __future__ import annotations
from decimal import Decimal, DecimalException
from typing import Iterable, Iterator, Optional, Sequence, Tuple, Union
import reprlib

from .core import (
    Amount, AmountOverflow, ParseError,
    TransactionKind, TransactionRecord,
    AMOUNT_DECIMAL_PLACES, CLIENT_ID_MAX, TRANSACTION_ID_MAX,
)


INPUT_FIELDS = ("type", "client", "tx", "amount")

_KINDS_BY_NAME = {kind.value: kind for kind in TransactionKind}


def parse_amount(text: str, line_number: Optional[int] = None) -> Amount:
    """
    Parse a non-negative decimal amount with at most four fractional digits.

    Trailing zeros beyond the fourth digit are accepted ("1.00000"); any
    digit that would be lost is not.

    Raises:
        ParseError: On the "amount" field for malformed, non-finite,
                    negative, too precise or out-of-range values.
    """
    text = text.strip()
    shown = reprlib.repr(text)
    try:
        value = Decimal(text)
    except DecimalException:
        raise ParseError("amount", f"not a decimal number: {shown}", line_number) from None
    if not value.is_finite():
        raise ParseError("amount", f"not a finite number: {shown}", line_number)
    if value < 0:
        raise ParseError("amount", f"negative amount: {shown}", line_number)
    try:
        return Amount.from_decimal(value)
    except AmountOverflow:
        raise ParseError("amount", f"out of range: {shown}", line_number) from None
    except ValueError:
        raise ParseError(
            "amount", f"more than {AMOUNT_DECIMAL_PLACES} fractional digits: {shown}", line_number
        ) from None
    except DecimalException as exc:
        raise ParseError("amount", f"{type(exc).__name__}: {shown}", line_number) from None


def parse_id(text: str, field: str, maximum: int, line_number: Optional[int] = None) -> int:
    """Parse an unsigned decimal integer no greater than maximum."""
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        raise ParseError(field, f"not an unsigned integer: {reprlib.repr(text)}", line_number)
    # int() refuses very long digit strings, leading zeros included
    digits = text.lstrip("0") or "0"
    if len(digits) > len(str(maximum)):
        raise ParseError(field, f"{reprlib.repr(text)} exceeds maximum {maximum}", line_number)
    value = int(digits)
    if value > maximum:
        raise ParseError(field, f"{value} exceeds maximum {maximum}", line_number)
    return value


def decode_row(row: Sequence[str], line_number: Optional[int] = None) -> TransactionRecord:
    """
    Decode one raw row.

    Args:
        row: Ordered field values (type, client, tx, amount)
        line_number: Position in the input, used in error messages

    Returns:
        The decoded TransactionRecord

    Raises:
        ParseError: Naming the first field that failed
    """
    if len(row) != len(INPUT_FIELDS):
        raise ParseError(
            "row", f"expected {len(INPUT_FIELDS)} fields, got {len(row)}", line_number
        )
    kind_text, client_text, tx_text, amount_text = row

    kind = _KINDS_BY_NAME.get(kind_text.strip())
    if kind is None:
        raise ParseError("type", f"unrecognized transaction type: {kind_text.strip()!r}", line_number)

    return TransactionRecord(
        kind=kind,
        client_id=parse_id(client_text, "client", CLIENT_ID_MAX, line_number),
        transaction_id=parse_id(tx_text, "tx", TRANSACTION_ID_MAX, line_number),
        amount=parse_amount(amount_text, line_number),
    )


def decode_rows(
    rows: Iterable[Tuple[int, Union[Sequence[str], ParseError]]]
) -> Iterator[Union[TransactionRecord, ParseError]]:
    """
    Lazily decode (line_number, fields) pairs from a record source.

    Yields a TransactionRecord for each good row and the ParseError for
    each bad one, in input order. Rows the source could not split into
    fields arrive as a ParseError already and are passed through. Nothing
    is buffered.
    """
    for line_number, fields in rows:
        if isinstance(fields, ParseError):
            yield fields
            continue
        try:
            record = decode_row(fields, line_number)
        except ParseError as error:
            yield error
        else:
            yield record
