"""Parser for Handelsbanken exports (SEK, converted to the reporting currency).

Handelsbanken's "Excel" download is an HTML page with four tables; the
transactions are in the fourth one.
"""

import asyncio
from typing import Any

import lxml.html
import pandas as pd
from lxml import etree

from ledgersync.exceptions import ParseError
from ledgersync.models import INSTITUTIONS, Institution, Transaction
from ledgersync.parsers.validation import (
    ParseResult,
    cell_text,
    coerce_cell_date,
    decode_text,
    ensure_rows_parsed,
    frame_to_records,
    log_parse_result,
    make_transaction,
    sort_chronologically,
)
from ledgersync.services.exchange_rate import CurrencyConverter, convert_transactions

HANDELSBANKEN_NAME = INSTITUTIONS[Institution.HANDELSBANKEN].name

TRANSACTION_TABLE_INDEX = 3
REQUIRED_COLUMNS = ("Transaktionsdatum", "Text", "Belopp")
PRELIMINARY_PREFIX = "Prel "


async def parse_handelsbanken_html(
    contents: bytes, converter: CurrencyConverter | None = None
) -> list[Transaction]:
    """
    Parse a Handelsbanken HTML-as-spreadsheet export.

    Columns used: Transaktionsdatum (date), Text (payee), Belopp (amount).
    Preliminary rows (Text starting with ``"Prel "``) are dropped; they show up
    again once settled.

    Raises:
        ParseError: If the file cannot be parsed
    """
    records = await asyncio.to_thread(_read_transaction_table, contents)

    result = ParseResult(transactions=[])

    for row_number, record in enumerate(records, start=2):
        result.total_rows_processed += 1

        text = cell_text(record["Text"])
        if text.startswith(PRELIMINARY_PREFIX):
            result.pending_filtered += 1
            continue

        booked = coerce_cell_date(record["Transaktionsdatum"])
        if booked is None:
            raise ParseError(
                HANDELSBANKEN_NAME, f"Row {row_number}: invalid date '{record['Transaktionsdatum']}'"
            )

        amount = _parse_amount(record["Belopp"])
        if amount is None:
            raise ParseError(HANDELSBANKEN_NAME, f"Row {row_number}: invalid amount '{record['Belopp']}'")

        result.transactions.append(make_transaction(booked, amount, payee=text))

    ensure_rows_parsed(result, HANDELSBANKEN_NAME)

    await convert_transactions(result.transactions, converter, HANDELSBANKEN_NAME)

    result.transactions = sort_chronologically(result.transactions)
    log_parse_result(result, "Handelsbanken HTML")

    return result.transactions


def _read_transaction_table(contents: bytes) -> list[dict[str, Any]]:
    html_text = decode_text(contents, HANDELSBANKEN_NAME)

    try:
        document = lxml.html.fromstring(html_text)
    except (etree.ParserError, ValueError) as e:
        raise ParseError(HANDELSBANKEN_NAME, f"Invalid HTML: {e}") from e

    tables = document.xpath("//table")
    if len(tables) <= TRANSACTION_TABLE_INDEX:
        raise ParseError(
            HANDELSBANKEN_NAME,
            f"Invalid Handelsbanken file format - expected at least 4 tables, found {len(tables)}",
        )

    rows = [
        [cell.text_content().strip() or None for cell in tr.xpath("./th|./td")]
        for tr in tables[TRANSACTION_TABLE_INDEX].xpath(".//tr")
    ]
    rows = [row for row in rows if row]
    if not rows:
        raise ParseError(HANDELSBANKEN_NAME, "Transaction table is empty")

    header, body = rows[0], rows[1:]
    width = len(header)
    body = [(row + [None] * width)[:width] for row in body]
    df = pd.DataFrame(body, columns=[cell or "" for cell in header])

    return frame_to_records(df, HANDELSBANKEN_NAME, REQUIRED_COLUMNS)


def _parse_amount(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        cleaned = "".join(value.split()).replace(",", ".")
        try:
            return float(cleaned)
        except ValueError:
            return None
    # Numeric cells are in öre
    return float(value) / 100
