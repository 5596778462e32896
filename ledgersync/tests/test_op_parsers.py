"""Tests for the OP checking account and OP credit card parsers."""

from datetime import date

import pytest

from ledgersync.exceptions import ParseError
from ledgersync.parsers.op_credit_card_xml import parse_op_credit_card_xml, parse_transaction_line
from ledgersync.parsers.op_csv import parse_op_csv

OP_HEADER = (
    "Kirjauspäivä;Arvopäivä;Määrä EUROA;Laji;Selitys;Saaja/Maksaja;Saajan tilinumero;"
    "Saajan pankin BIC;Viite;Viesti;Arkistointitunnus"
)


def _finvoice(lines: list[str], end_date: str | None = "20231231") -> bytes:
    period = (
        f"<InvoicingPeriodStartDate>20231201</InvoicingPeriodStartDate>"
        f"<InvoicingPeriodEndDate Format=\"CCYYMMDD\">{end_date}</InvoicingPeriodEndDate>"
        if end_date
        else ""
    )
    rows = "".join(
        f"<SpecificationDetails><SpecificationFreeText>{line}</SpecificationFreeText></SpecificationDetails>"
        for line in lines
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Finvoice><InvoiceDetails>{period}</InvoiceDetails>{rows}</Finvoice>"
    ).encode("utf-8")


class TestParseOpCsv:
    """Test OP checking account CSV parsing."""

    @pytest.mark.asyncio
    async def test_parses_sample_file(self, op_csv_bytes):
        """Should parse every row with value date, payee and type."""
        transactions = await parse_op_csv(op_csv_bytes)

        assert [t.payee for t in transactions] == ["ACCOUNT HOLDER", "EMPLOYER", "OSUUSPANKKI"]
        assert [t.amount for t in transactions] == [-201.1, 502.93, -5.65]
        assert transactions[0].transaction_type == "TILISIIRTO"
        assert transactions[0].message == "2018xxxx/xxxx"
        assert transactions[0].amount_eur == -201.1

    @pytest.mark.asyncio
    async def test_uses_value_date(self, op_csv_bytes):
        """The value date (second column) is authoritative."""
        transactions = await parse_op_csv(op_csv_bytes)

        assert transactions[0].date == "03/01/2019"

    @pytest.mark.asyncio
    async def test_service_fee_row(self):
        """A dotted-date fee row should produce exactly one transaction."""
        row = '"15.01.2019";"15.01.2019";"-5,65";"103";"PALVELUMAKSU";"OSUUSPANKKI";"";"0001234567";"fee message";"ref"'
        contents = f"{OP_HEADER}\n{row}\n".encode("utf-8")

        transactions = await parse_op_csv(contents)

        assert len(transactions) == 1
        transaction = transactions[0]
        assert transaction.amount == -5.65
        assert transaction.payee == "OSUUSPANKKI"
        assert transaction.transaction_type == "PALVELUMAKSU"
        assert transaction.date == "15/01/2019"
        assert transaction.month == 1
        assert transaction.year == 2019

    @pytest.mark.asyncio
    async def test_latin1_file(self):
        """Latin-1 encoded exports should parse."""
        row = "2020-03-01;2020-03-02;12,00;106;TILISIIRTO;Mäkinen;;;;viesti;x"
        contents = f"{OP_HEADER}\n{row}\n".encode("latin-1")

        transactions = await parse_op_csv(contents)

        assert transactions[0].payee == "Mäkinen"
        assert transactions[0].amount == 12.0

    @pytest.mark.asyncio
    async def test_header_only(self):
        """A file with only a header yields no transactions."""
        assert await parse_op_csv(f"{OP_HEADER}\n".encode("utf-8")) == []

    @pytest.mark.asyncio
    async def test_invalid_date_raises(self):
        """A correctly shaped row with a bad date is a parse error."""
        row = "yesterday;yesterday;1,00;106;TILISIIRTO;X;;;;;"
        with pytest.raises(ParseError, match="invalid value date"):
            await parse_op_csv(f"{OP_HEADER}\n{row}\n".encode("utf-8"))

    @pytest.mark.asyncio
    async def test_wrong_layout_raises(self):
        """A file whose rows are all too short is the wrong format."""
        contents = b"Date;Amount\n2024-01-01;100\n2024-01-02;50\n"
        with pytest.raises(ParseError, match="OP Bank"):
            await parse_op_csv(contents)


class TestParseTransactionLine:
    """Test OP credit card free-text line parsing."""

    def test_thousands_separator(self):
        """Space-grouped thousands should be joined."""
        transaction = parse_transaction_line(
            "20.12. Osto VERKKOKAUPPA COM HELSINKI                1 299,00", 2023
        )

        assert transaction is not None
        assert transaction.amount == 1299.0
        assert transaction.date == "20/12/2023"
        assert transaction.payee == "VERKKOKAUPPA COM HELSINKI"
        assert transaction.transaction_type == "Osto"

    def test_ungrouped_thousands(self):
        """Amounts over a thousand without a separator should parse."""
        transaction = parse_transaction_line("01.02. Osto SHOP HELSINKI      1234,00", 2024)

        assert transaction is not None
        assert transaction.amount == 1234.0
        assert transaction.payee == "SHOP HELSINKI"

    def test_simple_line(self):
        """A plain purchase line should parse."""
        transaction = parse_transaction_line("17.12. Osto ALEPA MAUNULA HELSINKI       305,33", 2023)

        assert transaction.amount == 305.33
        assert transaction.payee == "ALEPA MAUNULA HELSINKI"

    def test_merchant_with_digits(self):
        """Digits inside the merchant name are not part of the amount."""
        transaction = parse_transaction_line("03.12. Osto K-MARKET 24 ESPOO     12,90", 2023)

        assert transaction.payee == "K-MARKET 24 ESPOO"
        assert transaction.amount == 12.9

    def test_non_purchase_lines_skipped(self):
        """Lines that are not purchases return None."""
        assert parse_transaction_line("Edellinen saldo 1 000,00", 2023) is None
        assert parse_transaction_line("05.12. Maksu KIITOS 200,00", 2023) is None

    def test_zero_amount_rejected(self):
        """Non-positive amounts are rejected."""
        assert parse_transaction_line("05.12. Osto SHOP     0,00", 2023) is None

    def test_invalid_day_rejected(self):
        """Impossible dates are skipped."""
        assert parse_transaction_line("31.02. Osto SHOP     10,00", 2023) is None


class TestParseOpCreditCardXml:
    """Test OP credit card Finvoice parsing."""

    @pytest.mark.asyncio
    async def test_parses_purchases(self):
        """Purchases get the statement year; other lines are skipped."""
        contents = _finvoice(
            [
                "Edellinen saldo                                  500,00",
                "17.12. Osto ALEPA MAUNULA HELSINKI               305,33",
                "20.12. Osto VERKKOKAUPPA COM HELSINKI                1 299,00",
            ]
        )

        transactions = await parse_op_credit_card_xml(contents)

        assert len(transactions) == 2
        assert transactions[1].amount == 1299.0
        assert transactions[1].date == "20/12/2023"
        assert all(t.year == 2023 for t in transactions)

    @pytest.mark.asyncio
    async def test_year_falls_back_to_today(self):
        """Without a period end date the current year is used."""
        contents = _finvoice(["01.03. Osto SHOP HELSINKI     10,00"], end_date=None)

        transactions = await parse_op_credit_card_xml(contents, today=date(2025, 6, 1))

        assert transactions[0].date == "01/03/2025"

    @pytest.mark.asyncio
    async def test_invalid_xml_raises(self):
        """Malformed XML is a parse error."""
        with pytest.raises(ParseError, match="Invalid XML"):
            await parse_op_credit_card_xml(b"<Finvoice><unclosed></Finvoice>")
