"""
source.py - Record sources for ledger input

Provides raw input rows to the decoder as (line_number, fields) pairs.

Classes:
- RecordSource: Protocol defining the source interface
- CsvRecordSource: Rows streamed from a CSV file on disk
- StaticRecordSource: Rows held in memory

Sources are single-pass producers: rows() yields each row once, in input
order, and a new pass means calling rows() again (re-reading the input).
"""

from __future__ import annotations
import csv
import io
from os import PathLike
from typing import Iterable, Iterator, List, Protocol, Sequence, Tuple, Union, runtime_checkable

from .core import InputUnavailable, ParseError


# A raw input row and the line it ended on. A row the CSV reader could not
# split carries the ParseError in place of its fields.
RawRow = Tuple[int, Union[List[str], ParseError]]


@runtime_checkable
class RecordSource(Protocol):
    """
    Protocol for record sources.

    Implementations yield (line_number, fields) pairs lazily and raise
    InputUnavailable if the underlying input cannot be read.
    """

    def rows(self) -> Iterator[RawRow]:
        """Yield raw rows in input order, header excluded."""
        ...


def _iter_csv(reader, has_header: bool) -> Iterator[RawRow]:
    """
    Yield non-blank rows from a csv.reader, dropping the header row.

    A csv.Error concerns the row being read (oversized field, stray NUL);
    the reader resumes at the next line, so it is reported for that row
    only.
    """
    if has_header:
        try:
            next(reader, None)
        except csv.Error:
            pass  # header is dropped whether or not it splits
    while True:
        try:
            fields = next(reader)
        except StopIteration:
            return
        except csv.Error as exc:
            yield reader.line_num, ParseError("row", f"unreadable CSV row: {exc}", reader.line_num)
            continue
        if not any(value.strip() for value in fields):
            continue
        yield reader.line_num, fields


class CsvRecordSource:
    """
    Source reading rows lazily from a CSV file.

    The file is opened on the first call to next() on rows() and closed once
    the rows are exhausted. Whitespace after separators is ignored and blank
    lines are skipped.
    """

    def __init__(self, path: Union[str, PathLike], has_header: bool = True, encoding: str = "utf-8"):
        """
        Args:
            path: Path to the CSV input
            has_header: Whether the first row is a header to skip
            encoding: Text encoding of the file
        """
        self.path = path
        self.has_header = has_header
        self.encoding = encoding

    def rows(self) -> Iterator[RawRow]:
        """
        Stream rows from the file.

        Raises:
            InputUnavailable: If the file cannot be opened, or reading fails
                              part way (I/O error, undecodable bytes).
                              Rows the CSV reader rejects are yielded as
                              ParseError instead.
        """
        try:
            handle = open(self.path, newline="", encoding=self.encoding)
        except OSError as exc:
            raise InputUnavailable(f"Cannot open input {self.path}: {exc.strerror or exc}") from exc

        with handle:
            reader = csv.reader(handle, skipinitialspace=True)
            try:
                yield from _iter_csv(reader, self.has_header)
            except (OSError, UnicodeDecodeError) as exc:
                raise InputUnavailable(f"Cannot read input {self.path}: {exc}") from exc

    def __repr__(self):
        return f"CsvRecordSource({str(self.path)!r})"


class StaticRecordSource:
    """
    Source over rows already in memory.

    Useful for tests and for callers that receive rows from elsewhere.
    Line numbers count from 1, including the header row when present.
    """

    def __init__(self, rows: Iterable[Sequence[str]], has_header: bool = False):
        """
        Args:
            rows: Field lists in input order
            has_header: Whether the first row is a header to skip
        """
        self._rows = [list(row) for row in rows]
        self.has_header = has_header

    @classmethod
    def from_text(cls, text: str, has_header: bool = True) -> StaticRecordSource:
        """
        Build a source from CSV text.

        Examples:
            source = StaticRecordSource.from_text(
                "type, client, tx, amount\\n"
                "deposit, 1, 1, 1.0\\n"
            )
        """
        reader = csv.reader(io.StringIO(text), skipinitialspace=True)
        return cls(list(reader), has_header=has_header)

    def rows(self) -> Iterator[RawRow]:
        start = 1
        rows = self._rows
        if self.has_header:
            start, rows = 2, rows[1:]
        for offset, fields in enumerate(rows):
            if not any(value.strip() for value in fields):
                continue
            yield start + offset, list(fields)

    def __repr__(self):
        return f"StaticRecordSource({len(self._rows)} rows, header={self.has_header})"
