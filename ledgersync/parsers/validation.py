"""Shared decoding and validation utilities for statement parsers."""

import csv
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from io import BytesIO, StringIO
from typing import Any, Iterable

import pandas as pd

from ledgersync.exceptions import ParseError, ValidationError
from ledgersync.models import Transaction, round_amount

# Configure logging for parsers
logger = logging.getLogger("ledgersync.parsers")

DISPLAY_DATE_FORMAT = "%d/%m/%Y"
DISPLAY_DATE_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4}$")

MIN_YEAR = 1900
MAX_YEAR = 2100

# Spreadsheet serial 0 is 1899-12-30 once the 1900 leap-year bug is accounted for
SPREADSHEET_EPOCH = date(1899, 12, 30)


@dataclass
class ParseResult:
    """Result of parsing a statement file."""

    transactions: list[Transaction]
    total_rows_processed: int = 0
    rows_skipped: int = 0
    pending_filtered: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate the parsing success rate."""
        if self.total_rows_processed == 0:
            return 0.0
        parsed = len(self.transactions)
        return (parsed / self.total_rows_processed) * 100


def validate_file_contents(contents: bytes, institution: str, min_size: int = 10) -> None:
    """
    Validate file contents before parsing.

    Raises:
        ParseError: If the file is empty or implausibly small
    """
    if not contents:
        raise ParseError(institution, "File is empty")

    if len(contents) < min_size:
        raise ParseError(
            institution, f"File too small ({len(contents)} bytes), minimum {min_size} bytes expected"
        )


def decode_text(contents: bytes, institution: str) -> str:
    """Decode a text export, UTF-8 (with or without BOM) first, then Latin-1."""
    validate_file_contents(contents, institution)

    for encoding in ("utf-8-sig", "latin-1"):
        try:
            return contents.decode(encoding)
        except UnicodeDecodeError:
            continue

    raise ParseError(institution, "Could not decode file with any supported encoding (utf-8, latin-1)")


def read_delimited_rows(contents: bytes, institution: str, delimiter: str = ";") -> list[list[str]]:
    """
    Split a delimited export into rows of cells, dropping blank lines.

    Raises:
        ParseError: If the text has no sign of the expected delimiter
    """
    text = decode_text(contents, institution)

    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise ParseError(institution, "File has no content")

    if delimiter not in lines[0]:
        raise ParseError(institution, f"File does not appear to be '{delimiter}'-delimited")

    reader = csv.reader(StringIO("\n".join(lines)), delimiter=delimiter)
    return [row for row in reader if any(cell.strip() for cell in row)]


def read_spreadsheet(contents: bytes, institution: str, required_columns: Iterable[str]) -> list[dict[str, Any]]:
    """
    Read the first sheet of a spreadsheet export into row dicts keyed by header.

    Empty cells come back as ``None``; fully empty rows are dropped.

    Raises:
        ParseError: If the bytes are not a readable workbook or a column is missing
    """
    validate_file_contents(contents, institution)

    try:
        df = pd.read_excel(BytesIO(contents), sheet_name=0)
    except Exception as e:
        logger.error(f"{institution}: spreadsheet decode failed: {e}")
        raise ParseError(institution, f"Failed to read spreadsheet: {e}") from e

    return frame_to_records(df, institution, required_columns)


def frame_to_records(df: pd.DataFrame, institution: str, required_columns: Iterable[str]) -> list[dict[str, Any]]:
    """Turn a decoded table into row dicts, checking the expected header."""
    df = df.rename(columns=lambda name: str(name).strip())

    missing = [column for column in required_columns if column not in df.columns]
    if missing:
        raise ParseError(institution, f"Missing expected columns: {', '.join(missing)}")

    df = df.dropna(how="all")
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def cell_text(value: Any) -> str:
    """Spreadsheet cell as a clean string; empty cells become ``""``."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def parse_decimal_comma(value: str) -> float:
    """
    Parse a Finnish-style amount such as ``"-1 234,56"``.

    Raises:
        ValueError: If the value is not a number
    """
    cleaned = re.sub(r"\s", "", value).replace(",", ".")
    if not cleaned:
        raise ValueError("empty amount")
    return float(cleaned)


def parse_swedish_amount(value: str) -> float:
    """
    Parse a Swedish-style amount such as ``"-1.234,56"``.

    Dots are thousands separators and must be removed before the decimal
    comma is turned into a dot.

    Raises:
        ValueError: If the value is not a number
    """
    cleaned = re.sub(r"\s", "", value).replace(".", "").replace(",", ".")
    if not cleaned:
        raise ValueError("empty amount")
    return float(cleaned)


def parse_date(date_str: str, formats: Iterable[str]) -> date | None:
    """Parse a date string trying each format in turn."""
    date_str = date_str.strip()
    for fmt in formats:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    return None


def coerce_cell_date(value: Any, formats: Iterable[str] = ("%Y-%m-%d",)) -> date | None:
    """
    Interpret a spreadsheet date cell.

    Handles native date cells, spreadsheet serial numbers and date strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return None if pd.isna(value) else value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value):
            return None
        return SPREADSHEET_EPOCH + timedelta(days=int(value))

    text = cell_text(value)
    if not text:
        return None
    parsed = parse_date(text, formats)
    if parsed is not None:
        return parsed
    # Strings with a time component, e.g. "2024-01-05 13:45:10"
    try:
        stamp = pd.Timestamp(text)
    except (ValueError, TypeError):
        return None
    return None if pd.isna(stamp) else stamp.date()


def format_display_date(value: date) -> str:
    """Format a date as the ledger's DD/MM/YYYY key."""
    return value.strftime(DISPLAY_DATE_FORMAT)


def parse_display_date(value: str) -> date:
    """Parse a DD/MM/YYYY ledger date."""
    return datetime.strptime(value, DISPLAY_DATE_FORMAT).date()


def make_transaction(
    booked: date,
    amount: float,
    payee: str = "",
    transaction_type: str = "",
    message: str = "",
) -> Transaction:
    """Build a transaction whose month, year and date all come from ``booked``."""
    amount = round_amount(amount)
    return Transaction(
        month=booked.month,
        year=booked.year,
        date=format_display_date(booked),
        amount=amount,
        amount_eur=amount,
        payee=payee,
        transaction_type=transaction_type,
        message=message,
    )


def sort_chronologically(transactions: list[Transaction]) -> list[Transaction]:
    """Oldest first; rows on the same day keep their file order."""
    return sorted(transactions, key=lambda t: parse_display_date(t.date))


def ensure_rows_parsed(result: ParseResult, institution: str) -> None:
    """
    Reject files where every data row was skipped as malformed.

    Raises:
        ParseError: If rows were present but none matched the layout
    """
    matched = len(result.transactions) + result.pending_filtered
    if result.total_rows_processed > 0 and matched == 0 and result.rows_skipped > 0:
        detail = "; ".join(result.warnings[:3])
        raise ParseError(institution, f"No rows matched the expected layout ({detail})")


def _is_finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_transactions(transactions: list[Transaction]) -> None:
    """
    Check the canonical invariants of every parsed transaction.

    Raises:
        ValidationError: Listing each offending row
    """
    issues: list[str] = []

    for index, transaction in enumerate(transactions, start=1):
        problems = []

        if not 1 <= transaction.month <= 12:
            problems.append(f"Invalid month: {transaction.month}")

        if not MIN_YEAR <= transaction.year <= MAX_YEAR:
            problems.append(f"Invalid year: {transaction.year}")

        if not _is_finite(transaction.amount):
            problems.append(f"Invalid amount: {transaction.amount}")

        if not _is_finite(transaction.amount_eur):
            problems.append(f"Invalid amountEur: {transaction.amount_eur}")

        if not DISPLAY_DATE_PATTERN.match(transaction.date):
            problems.append(f"Invalid date: '{transaction.date}'")
        else:
            day, month, year = (int(part) for part in transaction.date.split("/"))
            if month != transaction.month or year != transaction.year:
                problems.append(
                    f"Date {transaction.date} disagrees with month/year {transaction.month}/{transaction.year}"
                )

        if problems:
            issues.append(f"Row {index}: {', '.join(problems)}")

    if issues:
        raise ValidationError(issues)


def log_parse_result(result: ParseResult, parser_name: str) -> None:
    """Log parsing results for debugging."""
    logger.info(
        f"{parser_name}: Parsed {len(result.transactions)} transactions "
        f"(processed {result.total_rows_processed}, "
        f"skipped {result.rows_skipped}, "
        f"pending {result.pending_filtered})"
    )

    if result.errors:
        for error in result.errors[:5]:  # Log first 5 errors
            logger.warning(f"{parser_name}: {error}")

    if result.warnings:
        for warning in result.warnings[:5]:  # Log first 5 warnings
            logger.debug(f"{parser_name}: {warning}")
