"""Parser for OP credit card statements in Finvoice XML format."""

import re
import xml.etree.ElementTree as ET
from datetime import date

from ledgersync.exceptions import ParseError
from ledgersync.models import INSTITUTIONS, Institution, Transaction
from ledgersync.parsers.validation import (
    ParseResult,
    log_parse_result,
    make_transaction,
    validate_file_contents,
)

OP_CREDIT_CARD_NAME = INSTITUTIONS[Institution.OP_CREDIT_CARD].name

PURCHASE_TYPE = "Osto"
YEAR_ELEMENTS = ("InvoicingPeriodEndDate", "EndDate")

# "17.12. Osto ALEPA MAUNULA HELSINKI                            305,33"
TRANSACTION_LINE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.\s+Osto\s+(.+)$")
# Trailing amount, space-grouped or plain: "1 950,27", "1950,27"
TRAILING_AMOUNT = re.compile(r"\s+(\d{1,3}(?:\s\d{3})+,\d{2}|\d+,\d{2})\s*$")


async def parse_op_credit_card_xml(contents: bytes, today: date | None = None) -> list[Transaction]:
    """
    Parse an OP credit card Finvoice statement.

    Purchases are free-text lines in ``SpecificationFreeText`` elements; only
    lines shaped ``DD.MM. Osto <merchant> <amount>`` become transactions. The
    lines carry no year, so it comes from the invoicing period end date.

    Raises:
        ParseError: If the file is not well-formed XML
    """
    validate_file_contents(contents, OP_CREDIT_CARD_NAME)

    try:
        root = ET.fromstring(contents)
    except ET.ParseError as e:
        raise ParseError(OP_CREDIT_CARD_NAME, f"Invalid XML: {e}") from e

    year = statement_year(root, today)
    result = ParseResult(transactions=[])

    for element in root.iter():
        if _local_name(element.tag) != "SpecificationFreeText":
            continue

        line = (element.text or "").strip()
        result.total_rows_processed += 1

        transaction = parse_transaction_line(line, year)
        if transaction is None:
            result.rows_skipped += 1
            continue

        result.transactions.append(transaction)

    log_parse_result(result, "OP Credit Card XML")

    return result.transactions


def statement_year(root: ET.Element, today: date | None = None) -> int:
    """Year of the invoicing period end, or the current year when absent."""
    fallback = (today or date.today()).year

    for element in root.iter():
        if _local_name(element.tag) not in YEAR_ELEMENTS:
            continue
        value = (element.text or "").strip()
        if len(value) < 4 or not value[:4].isdigit():
            return fallback
        return int(value[:4])

    return fallback


def parse_transaction_line(line: str, year: int) -> Transaction | None:
    """Parse one free-text purchase line; anything else returns None."""
    match = TRANSACTION_LINE.match(line)
    if not match:
        return None

    day_str, month_str, rest = match.groups()
    try:
        booked = date(year, int(month_str), int(day_str))
    except ValueError:
        return None

    amount_match = TRAILING_AMOUNT.search(rest)
    if not amount_match:
        return None

    amount = float(re.sub(r"\s", "", amount_match.group(1)).replace(",", "."))
    if amount <= 0:
        return None

    payee = rest[: amount_match.start()].strip()
    if not payee:
        return None

    return make_transaction(booked, amount, payee=payee, transaction_type=PURCHASE_TYPE)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""
