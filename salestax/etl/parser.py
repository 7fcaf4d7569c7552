"""
Charge spreadsheet parser.

This module validates the header of an uploaded CSV against the two
recognized schemas and turns each data row into a ChargeRecord, deriving
the rate period (quarter and year) from the row's date or from today.
"""

import csv
import io
import logging
import math
from datetime import date
from typing import Iterator, List, Optional, Tuple, Union

from salestax.etl.utils import (
    ChargeFormatError,
    DateFormatError,
    InputError,
    RowFormatError,
    SchemaError,
)
from salestax.models import Address, ChargeRecord, RowFailure

logger = logging.getLogger("salestax.parser")

HEADER_WITHOUT_DATE = ("client", "charge", "street address", "city", "State", "zip code")
HEADER_WITH_DATE = ("client", "date", "charge", "street address", "city", "State", "zip code")

ParsedRow = Union[ChargeRecord, RowFailure]


def quarter_for_month(month: int) -> int:
    """Return the calendar quarter (1-4) of a month (1-12)."""
    return (month - 1) // 3 + 1


def parse_date(value: str, client: str) -> Tuple[int, int, int]:
    """Parse a MM/DD/YYYY date into (month, day, year).

    Each component is range-checked on its own; day/month combinations such
    as 02/30 are accepted.

    Raises:
        DateFormatError: If the date is malformed or out of range
    """
    parts = value.split("/")
    if len(parts) != 3:
        raise DateFormatError(
            f"Invalid date format for client {client}: {value!r} (expected MM/DD/YYYY)"
        )

    parts = [part.strip() for part in parts]
    if not all(part.isascii() and part.isdigit() for part in parts):
        raise DateFormatError(
            f"Invalid date format for client {client}: {value!r} (expected MM/DD/YYYY)"
        )
    month, day, year = (int(part) for part in parts)

    if not 1 <= month <= 12:
        raise DateFormatError(f"Invalid month {month} for client {client}: must be 1-12")
    if not 1 <= day <= 31:
        raise DateFormatError(f"Invalid day {day} for client {client}: must be 1-31")
    if year < 2000:
        raise DateFormatError(f"Invalid year {year} for client {client}: must be 2000 or later")

    return month, day, year


def parse_charge(value: str, client: str) -> float:
    """Parse a charge amount.

    Raises:
        ChargeFormatError: If the charge is not a finite, non-negative number
    """
    try:
        charge = float(value)
    except ValueError:
        raise ChargeFormatError(f"Invalid charge {value!r} for client {client}")

    if not math.isfinite(charge) or charge < 0:
        raise ChargeFormatError(
            f"Invalid charge {value!r} for client {client}: must be a non-negative amount"
        )
    return charge


def _read_table(content: Union[bytes, str]) -> List[List[str]]:
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InputError(f"CSV is not valid UTF-8: {str(e)}") from e
    elif content.startswith("\ufeff"):
        content = content[1:]

    try:
        return list(csv.reader(io.StringIO(content)))
    except csv.Error as e:
        raise InputError(f"Malformed CSV: {str(e)}") from e


def validate_header(header: List[str]) -> bool:
    """Validate the header row.

    Returns:
        True if the header carries a date column, False otherwise

    Raises:
        SchemaError: If the header matches neither schema
    """
    received = tuple(cell.strip() for cell in header)
    if received == HEADER_WITH_DATE:
        return True
    if received == HEADER_WITHOUT_DATE:
        return False
    raise SchemaError(
        expected=f"{list(HEADER_WITHOUT_DATE)} or {list(HEADER_WITH_DATE)}",
        received=list(received),
    )


class CSVParser:
    """Parser for charge spreadsheets."""

    def __init__(self, content: Union[bytes, str], today: Optional[date] = None):
        """Initialize the parser and validate the header.

        Args:
            content: Raw CSV content
            today: Date used for the default rate period. Defaults to today.

        Raises:
            SchemaError: If the input is empty or the header is not recognized
        """
        rows = _read_table(content)
        if len(rows) < 2:
            raise SchemaError(
                expected="a header and at least one data row",
                received=f"{len(rows)} row(s)",
                message="CSV is empty or lacks data rows",
            )

        self.header = tuple(cell.strip() for cell in rows[0])
        self.has_date = validate_header(rows[0])
        self.rows = [row for row in rows[1:] if any(cell.strip() for cell in row)]
        self.today = today or date.today()

        if not self.rows:
            raise SchemaError(
                expected="a header and at least one data row",
                received="header only",
                message="CSV is empty or lacks data rows",
            )

    def parse_row(self, row_index: int, row: List[str]) -> ChargeRecord:
        """Parse one data row.

        Raises:
            RowFormatError: If the row has the wrong number of fields
            DateFormatError: If the date is invalid
            ChargeFormatError: If the charge is invalid
        """
        fields = tuple(cell.strip() for cell in row)
        if len(fields) != len(self.header):
            raise RowFormatError(
                f"Row {row_index + 1} has {len(fields)} fields, expected {len(self.header)}"
            )

        if self.has_date:
            client, raw_date, charge, street, city, state, zip_code = fields
            month, day, year = parse_date(raw_date, client)
        else:
            client, charge, street, city, state, zip_code = fields
            raw_date = None
            month, day, year = self.today.month, self.today.day, self.today.year

        return ChargeRecord(
            row_index=row_index,
            client=client,
            date=raw_date,
            month=month,
            day=day,
            year=year,
            quarter=quarter_for_month(month),
            charge=parse_charge(charge, client),
            address=Address(street=street, city=city, state=state, zip=zip_code),
            raw_fields=fields,
        )

    def records(self) -> Iterator[ChargeRecord]:
        """Yield a record per row, raising on the first malformed row."""
        for row_index, row in enumerate(self.rows):
            yield self.parse_row(row_index, row)

    def outcomes(self) -> Iterator[ParsedRow]:
        """Yield a record or a RowFailure per row."""
        for row_index, row in enumerate(self.rows):
            try:
                yield self.parse_row(row_index, row)
            except InputError as e:
                logger.warning(f"Skipping row {row_index + 1}: {e}")
                yield RowFailure(
                    row_index=row_index,
                    raw_fields=self._pad(row),
                    error=str(e),
                )

    def _pad(self, row: List[str]) -> Tuple[str, ...]:
        fields = [cell.strip() for cell in row[:len(self.header)]]
        fields.extend([""] * (len(self.header) - len(fields)))
        return tuple(fields)


def parse_csv(content: Union[bytes, str], today: Optional[date] = None) -> List[ChargeRecord]:
    """Parse a charge spreadsheet into records.

    Parsing is eager: any malformed row aborts the whole parse.

    Args:
        content: Raw CSV content
        today: Date used for the default rate period

    Returns:
        List of charge records in input order

    Raises:
        InputError: If the header or any row is invalid
    """
    parser = CSVParser(content, today=today)
    records = list(parser.records())
    logger.info(f"Parsed {len(records)} rows")
    return records


def parse_rows(content: Union[bytes, str], today: Optional[date] = None) -> Tuple[Tuple[str, ...], List[ParsedRow]]:
    """Parse a charge spreadsheet keeping per-row failures.

    Args:
        content: Raw CSV content
        today: Date used for the default rate period

    Returns:
        Tuple of (header, list of records or failures in input order)

    Raises:
        SchemaError: If the header is invalid
    """
    parser = CSVParser(content, today=today)
    return parser.header, list(parser.outcomes())
