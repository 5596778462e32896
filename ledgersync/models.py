"""Data models for LedgerSync."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TWO_PLACES = Decimal("0.01")


def round_amount(value: float) -> float:
    """Round to 2 decimals, halves away from zero.

    Goes through the shortest ``repr`` of the float so that ``1.005`` rounds
    like the printed value rather than its binary approximation.
    """
    try:
        return float(Decimal(repr(float(value))).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        # NaN and infinities pass through unchanged for validation to reject
        return float(value)


class Institution(str, Enum):
    """Supported statement sources."""

    OP = "op"
    OP_CREDIT_CARD = "op-credit-card"
    NORDEA_FI = "nordea-fi"
    NORDEA_SE = "nordea-se"
    NORWEGIAN = "norwegian"
    HANDELSBANKEN = "handelsbanken"
    BINANCE = "binance"


class InstitutionInfo(BaseModel):
    """Static description of a statement source."""

    model_config = ConfigDict(frozen=True)

    id: Institution
    name: str
    sheet_name: str  # Short name used for ledger tabs
    file_types: tuple[str, ...]
    currency: str = "EUR"


INSTITUTIONS: dict[Institution, InstitutionInfo] = {
    Institution.OP: InstitutionInfo(
        id=Institution.OP, name="OP Bank", sheet_name="OP", file_types=(".csv",)
    ),
    Institution.OP_CREDIT_CARD: InstitutionInfo(
        id=Institution.OP_CREDIT_CARD,
        name="OP Credit Card",
        sheet_name="OPCreditCard",
        file_types=(".xml",),
    ),
    Institution.NORDEA_FI: InstitutionInfo(
        id=Institution.NORDEA_FI, name="Nordea Finland", sheet_name="NordeaFI", file_types=(".csv",)
    ),
    Institution.NORDEA_SE: InstitutionInfo(
        id=Institution.NORDEA_SE,
        name="Nordea Sweden",
        sheet_name="NordeaSWE",
        file_types=(".xlsx",),
        currency="SEK",
    ),
    Institution.NORWEGIAN: InstitutionInfo(
        id=Institution.NORWEGIAN, name="Bank Norwegian", sheet_name="Norwegian", file_types=(".xlsx",)
    ),
    Institution.HANDELSBANKEN: InstitutionInfo(
        id=Institution.HANDELSBANKEN,
        name="Handelsbanken",
        sheet_name="Handelsbanken",
        file_types=(".xls", ".xlsx", ".html"),
        currency="SEK",
    ),
    Institution.BINANCE: InstitutionInfo(
        id=Institution.BINANCE, name="Binance", sheet_name="Binance", file_types=(".xlsx",)
    ),
}


class Transaction(BaseModel):
    """A normalized transaction, one row in the ledger.

    Every field except category has a concrete default; None is never stored.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    month: int = 0
    year: int = 0
    date: str = ""  # DD/MM/YYYY
    amount: float = 0.0  # Native currency; negative for outflows
    amount_eur: float = 0.0  # Reporting currency
    payee: str = ""
    transaction_type: str = ""
    message: str = ""
    category: str | None = None

    @field_validator("date", "payee", "transaction_type", "message", mode="before")
    @classmethod
    def _empty_string_for_missing(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("month", "year", "amount", "amount_eur", mode="before")
    @classmethod
    def _zero_for_missing(cls, value: Any) -> Any:
        return 0 if value is None else value


class ImportContext(BaseModel):
    """Routes an import to the ledger tab of one (institution, owner) pair."""

    model_config = ConfigDict(frozen=True)

    institution: Institution
    owner: str

    @property
    def info(self) -> InstitutionInfo:
        return INSTITUTIONS[self.institution]

    @property
    def destination(self) -> str:
        """Ledger tab name, e.g. ``"Lauri NordeaFI"``."""
        return f"{self.owner} {self.info.sheet_name}"


class ImportStage(str, Enum):
    """Steps of a single file import."""

    PARSED = "parsed"
    VALIDATED = "validated"
    FETCHED_EXISTING = "fetched_existing"
    RECONCILED = "reconciled"
    APPENDED = "appended"
    SUCCESS = "success"
    FAILED = "failed"


class UploadResult(BaseModel):
    """Outcome of importing one file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    success: bool
    existing_count: int = 0
    file_count: int = 0
    new_count: int = 0
    written_count: int = 0
    new_transactions: list[Transaction] = Field(default_factory=list)
    error: str | None = None
    stage: ImportStage = ImportStage.SUCCESS
    failed_step: ImportStage | None = None  # Step that was running when the import failed


class FileUpload(BaseModel):
    """One file handed to a batch import."""

    filename: str
    owner: str
    contents: bytes
    institution: Institution | None = None  # None => detect from contents


class UploadSummary(BaseModel):
    """Per-file report of a batch import."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    file_name: str
    institution_name: str
    result: UploadResult
    timestamp: datetime = Field(default_factory=datetime.now)
