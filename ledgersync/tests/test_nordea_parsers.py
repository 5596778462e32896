"""Tests for the Nordea Finland and Nordea Sweden parsers."""

import pytest

from ledgersync.exceptions import ParseError, RateUnavailable
from ledgersync.parsers.nordea_fi_csv import parse_nordea_fi_csv
from ledgersync.parsers.nordea_se_xlsx import parse_nordea_se_xlsx
from ledgersync.services.exchange_rate import CurrencyConverter, RateCache
from ledgersync.tests.helpers import FakeRateProvider

NORDEA_FI_HEADER = "Kirjauspäivä;Määrä;Maksaja;Maksunsaaja;Nimi;Otsikko;Viitenumero;Valuutta"


class TestParseNordeaFiCsv:
    """Test Nordea Finland CSV parsing."""

    @pytest.mark.asyncio
    async def test_reverses_to_chronological(self):
        """The export is newest first; output is oldest first."""
        contents = (
            f"{NORDEA_FI_HEADER}\n"
            "2024/02/08;-63,00;FI49 2212;;;Korkeasti koulutettujen;RF123;EUR;\n"
            "2024/02/01;1 500,25;;FI00 1111;;Palkka;;EUR;\n"
        ).encode("utf-8")

        transactions = await parse_nordea_fi_csv(contents)

        assert [t.date for t in transactions] == ["01/02/2024", "08/02/2024"]
        assert transactions[0].amount == 1500.25
        assert transactions[0].payee == "Palkka"
        assert transactions[1].amount == -63.0
        assert transactions[1].payee == "Korkeasti koulutettujen"
        assert transactions[1].message == "RF123"
        assert transactions[1].transaction_type == ""

    @pytest.mark.asyncio
    async def test_skips_short_rows(self):
        """Rows with too few columns are skipped when others parse."""
        contents = (
            f"{NORDEA_FI_HEADER}\n"
            "2024/02/08;-63,00;FI49 2212;;;Kauppa;;EUR;\n"
            "Saldo;100\n"
        ).encode("utf-8")

        transactions = await parse_nordea_fi_csv(contents)

        assert len(transactions) == 1

    @pytest.mark.asyncio
    async def test_invalid_amount_raises(self):
        """A correctly shaped row with a bad amount is a parse error."""
        contents = f"{NORDEA_FI_HEADER}\n2024/02/08;abc;;;;Kauppa;;EUR;\n".encode("utf-8")

        with pytest.raises(ParseError, match="Nordea Finland: Row 2: invalid amount"):
            await parse_nordea_fi_csv(contents)

    @pytest.mark.asyncio
    async def test_rejects_comma_separated_file(self):
        """A comma-separated file is not a Nordea export."""
        with pytest.raises(ParseError, match="Nordea Finland"):
            await parse_nordea_fi_csv(b"Date,Amount,Payee\n2024-01-01,1.00,X\n")


class TestParseNordeaSeXlsx:
    """Test Nordea Sweden XLSX parsing and conversion."""

    @pytest.fixture
    def statement(self, xlsx_bytes):
        return xlsx_bytes(
            [
                {"Bokföringsdag": "2024-02-03", "Datum": "2024-02-03", "Transaktion": "ICA NARA", "Belopp": "-1.234,56"},
                {"Bokföringsdag": "2024-01-15", "Datum": "2024-01-15", "Transaktion": "Lon", "Belopp": "25.000,00"},
            ]
        )

    @pytest.mark.asyncio
    async def test_converts_and_sorts(self, statement):
        """Amounts are converted per month and rows sorted oldest first."""
        provider = FakeRateProvider({"2024-01-01": 10.0, "2024-02-01": 11.0})
        converter = CurrencyConverter(provider, RateCache())

        transactions = await parse_nordea_se_xlsx(statement, converter)

        assert [t.payee for t in transactions] == ["Lon", "ICA NARA"]
        assert transactions[0].amount == 25000.0
        assert transactions[0].amount_eur == 2500.0
        assert transactions[1].amount == -1234.56
        assert transactions[1].amount_eur == round(-1234.56 / 11.0, 2)
        assert ("2024-02-01", "EUR", "SEK") in provider.calls

    @pytest.mark.asyncio
    async def test_conversion_failure_keeps_native_amount(self, statement):
        """A failing provider leaves every row unconverted instead of raising."""
        provider = FakeRateProvider(error=RateUnavailable("no key"))
        converter = CurrencyConverter(provider, RateCache())

        transactions = await parse_nordea_se_xlsx(statement, converter)

        assert len(transactions) == 2
        assert all(t.amount_eur == t.amount for t in transactions)

    @pytest.mark.asyncio
    async def test_provider_crash_keeps_native_amount(self, statement):
        """Unexpected provider errors are treated like a missing rate."""
        provider = FakeRateProvider(error=RuntimeError("boom"))
        converter = CurrencyConverter(provider, RateCache())

        transactions = await parse_nordea_se_xlsx(statement, converter)

        assert all(t.amount_eur == t.amount for t in transactions)

    @pytest.mark.asyncio
    async def test_numeric_amount_cells(self, xlsx_bytes):
        """Numeric Belopp cells are used as-is."""
        contents = xlsx_bytes([{"Datum": "2024-03-01", "Transaktion": "Swish", "Belopp": -99.5}])

        transactions = await parse_nordea_se_xlsx(contents)

        assert transactions[0].amount == -99.5
        assert transactions[0].amount_eur == -99.5

    @pytest.mark.asyncio
    async def test_missing_columns_raise(self, xlsx_bytes):
        """A workbook without the expected header is the wrong format."""
        contents = xlsx_bytes([{"Date": "2024-03-01", "Amount": 1}])

        with pytest.raises(ParseError, match="Missing expected columns: Datum, Transaktion, Belopp"):
            await parse_nordea_se_xlsx(contents)

    @pytest.mark.asyncio
    async def test_not_a_workbook(self):
        """Random bytes are a parse error."""
        with pytest.raises(ParseError, match="Nordea Sweden"):
            await parse_nordea_se_xlsx(b"this is definitely not a workbook")
