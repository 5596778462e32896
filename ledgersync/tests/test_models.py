"""Tests for the data models."""

import math

from ledgersync.models import (
    INSTITUTIONS,
    ImportContext,
    ImportStage,
    Institution,
    Transaction,
    UploadResult,
    round_amount,
)


class TestRoundAmount:
    """Test two-decimal rounding."""

    def test_rounds_half_away_from_zero(self):
        """Halves should round away from zero in both directions."""
        assert round_amount(1.005) == 1.01
        assert round_amount(-1.005) == -1.01
        assert round_amount(2.675) == 2.68

    def test_keeps_two_decimal_values(self):
        """Already-rounded values should be unchanged."""
        assert round_amount(-5.65) == -5.65
        assert round_amount(1299.0) == 1299.0

    def test_passes_nan_through(self):
        """NaN should come back as NaN for validation to reject."""
        assert math.isnan(round_amount(float("nan")))


class TestTransaction:
    """Test canonical transaction defaults."""

    def test_fills_defaults(self):
        """Unset fields should be zero or empty string, never None."""
        transaction = Transaction()

        assert transaction.month == 0
        assert transaction.year == 0
        assert transaction.amount == 0.0
        assert transaction.amount_eur == 0.0
        assert transaction.date == ""
        assert transaction.payee == ""
        assert transaction.transaction_type == ""
        assert transaction.message == ""
        assert transaction.category is None

    def test_none_becomes_default(self):
        """Explicit None should be replaced by the field default."""
        transaction = Transaction(message=None, payee=None, amount=None)

        assert transaction.message == ""
        assert transaction.payee == ""
        assert transaction.amount == 0

    def test_serializes_camel_case(self):
        """JSON output should use camelCase keys."""
        transaction = Transaction(month=1, year=2024, date="05/01/2024", amount=-1.5, amount_eur=-1.5)
        data = transaction.model_dump(by_alias=True)

        assert data["amountEur"] == -1.5
        assert data["transactionType"] == ""

    def test_accepts_camel_case_input(self):
        """Records can be built from camelCase keys."""
        transaction = Transaction.model_validate({"amountEur": 3.0, "transactionType": "Osto"})

        assert transaction.amount_eur == 3.0
        assert transaction.transaction_type == "Osto"


class TestImportContext:
    """Test destination routing."""

    def test_destination_combines_owner_and_short_name(self):
        """Destination should be '<owner> <short name>'."""
        context = ImportContext(institution=Institution.NORDEA_FI, owner="Lauri")

        assert context.destination == "Lauri NordeaFI"
        assert context.info.name == "Nordea Finland"

    def test_every_institution_is_registered(self):
        """Every institution should have registry metadata."""
        assert set(INSTITUTIONS) == set(Institution)

    def test_sek_institutions(self):
        """Only the Swedish banks report in SEK."""
        sek = {i for i, info in INSTITUTIONS.items() if info.currency == "SEK"}
        assert sek == {Institution.NORDEA_SE, Institution.HANDELSBANKEN}


class TestUploadResult:
    """Test upload result serialization."""

    def test_json_keys(self):
        """Result JSON should carry the camelCase counters."""
        result = UploadResult(success=True, existing_count=2, file_count=3, new_count=1, written_count=1)
        data = result.model_dump(by_alias=True, exclude_none=True)

        assert data["existingCount"] == 2
        assert data["fileCount"] == 3
        assert data["newCount"] == 1
        assert data["writtenCount"] == 1
        assert data["newTransactions"] == []
        assert data["stage"] == ImportStage.SUCCESS
        assert "error" not in data
