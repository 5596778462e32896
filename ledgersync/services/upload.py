"""File import service: parser dispatch and the per-file import pipeline."""

import logging
from io import BytesIO

import pandas as pd

from ledgersync.config import Settings
from ledgersync.exceptions import (
    NetworkError,
    ParseError,
    StoreReadError,
    StoreWriteError,
    ValidationError,
)
from ledgersync.models import (
    INSTITUTIONS,
    FileUpload,
    ImportContext,
    ImportStage,
    Institution,
    Transaction,
    UploadResult,
    UploadSummary,
)
from ledgersync.parsers.binance_xlsx import parse_binance_xlsx
from ledgersync.parsers.handelsbanken_html import parse_handelsbanken_html
from ledgersync.parsers.nordea_fi_csv import parse_nordea_fi_csv
from ledgersync.parsers.nordea_se_xlsx import parse_nordea_se_xlsx
from ledgersync.parsers.norwegian_xlsx import parse_norwegian_xlsx
from ledgersync.parsers.op_credit_card_xml import parse_op_credit_card_xml
from ledgersync.parsers.op_csv import parse_op_csv
from ledgersync.parsers.validation import validate_transactions
from ledgersync.services.dedup import (
    decode_store_rows,
    encode_transactions,
    find_new_transactions,
    header_row,
)
from ledgersync.services.exchange_rate import CurrencyConverter, ExchangeRatesApiProvider, RateCache
from ledgersync.store.base import TabularStore
from ledgersync.store.sheets import GoogleSheetsStore
from ledgersync.store.sqlite import SqliteStore

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
SNIFF_BYTES = 4096


async def parse_file(
    institution: Institution,
    contents: bytes,
    converter: CurrencyConverter | None = None,
) -> list[Transaction]:
    """
    Parse a statement with the parser of ``institution``.

    Raises:
        ParseError: If the file does not match the institution's layout
    """
    name = INSTITUTIONS[institution].name

    try:
        if institution == Institution.OP:
            transactions = await parse_op_csv(contents)
        elif institution == Institution.OP_CREDIT_CARD:
            transactions = await parse_op_credit_card_xml(contents)
        elif institution == Institution.NORDEA_FI:
            transactions = await parse_nordea_fi_csv(contents)
        elif institution == Institution.NORDEA_SE:
            transactions = await parse_nordea_se_xlsx(contents, converter)
        elif institution == Institution.NORWEGIAN:
            transactions = await parse_norwegian_xlsx(contents)
        elif institution == Institution.HANDELSBANKEN:
            transactions = await parse_handelsbanken_html(contents, converter)
        elif institution == Institution.BINANCE:
            transactions = await parse_binance_xlsx(contents)
        else:
            raise ParseError(name, f"Unsupported institution: {institution}")
    except ParseError:
        raise
    except Exception as e:
        logger.exception(f"{name}: unexpected error while parsing")
        raise ParseError(name, e) from e

    return transactions


def _spreadsheet_columns(contents: bytes) -> set[str]:
    try:
        df = pd.read_excel(BytesIO(contents), sheet_name=0, nrows=0)
    except Exception as e:
        logger.debug(f"Could not read spreadsheet header for detection: {e}")
        return set()
    return {str(column).strip() for column in df.columns}


def detect_institution(filename: str, contents: bytes) -> Institution | None:
    """Guess the institution of a statement from its contents."""
    head = contents[:SNIFF_BYTES]
    text = head.decode("utf-8", errors="ignore").lower()

    # Finvoice XML
    if "finvoice" in text:
        return Institution.OP_CREDIT_CARD

    # Handelsbanken serves HTML under an .xls name
    if "<table" in text or "<html" in text:
        return Institution.HANDELSBANKEN

    if head.startswith(ZIP_MAGIC):
        columns = _spreadsheet_columns(contents)
        if {"Datum", "Transaktion", "Belopp"} <= columns:
            return Institution.NORDEA_SE
        if "TransactionDate" in columns:
            return Institution.NORWEGIAN
        if {"Timestamp", "Paid OUT (EUR)"} <= columns:
            return Institution.BINANCE
        return None

    first_line = head.decode("latin-1").splitlines()[0].lower() if head.strip() else ""
    if ";" in first_line:
        if "arvop" in first_line:
            return Institution.OP
        if "otsikko" in first_line:
            return Institution.NORDEA_FI

    logger.debug(f"Could not detect institution for file: {filename}")
    return None


def resolve_institution(explicit: Institution | None, filename: str, contents: bytes) -> Institution:
    """
    Institution to parse ``contents`` with; an explicit choice always wins.

    Raises:
        ParseError: If no institution was given and none could be detected
    """
    if explicit is not None:
        return explicit

    detected = detect_institution(filename, contents)
    if detected is None:
        raise ParseError(filename, "Could not detect the bank of this file, please choose it explicitly")

    logger.info(f"Detected {INSTITUTIONS[detected].name} for {filename}")
    return detected


def _failed(step: ImportStage, error: Exception, **counts) -> UploadResult:
    return UploadResult(success=False, error=str(error), stage=ImportStage.FAILED, failed_step=step, **counts)


class ImportOrchestrator:
    """Runs parse -> validate -> fetch existing -> reconcile -> append for one file at a time."""

    def __init__(self, store: TabularStore, converter: CurrencyConverter | None = None):
        self.store = store
        self.converter = converter

    def create_context(self, institution: Institution, owner: str) -> ImportContext:
        return ImportContext(institution=institution, owner=owner)

    async def import_file(self, context: ImportContext, contents: bytes) -> UploadResult:
        """Parse ``contents`` and import the result into the context's destination."""
        try:
            transactions = await parse_file(context.institution, contents, self.converter)
        except ParseError as e:
            logger.error(f"Parse failed for {context.destination}: {e}")
            return _failed(ImportStage.PARSED, e)

        return await self.import_transactions(transactions, context)

    async def import_transactions(self, transactions: list[Transaction], context: ImportContext) -> UploadResult:
        """
        Append the transactions not yet in the destination.

        Store failures are returned as an unsuccessful result, never retried.
        A destination that cannot be read aborts the import instead of being
        treated as empty.
        """
        if not transactions:
            logger.info(f"No transactions to import into {context.destination}")
            return UploadResult(success=True)

        file_count = len(transactions)
        logger.info(f"Parsed {file_count} transactions for {context.destination}")

        try:
            validate_transactions(transactions)
        except ValidationError as e:
            logger.error(f"Validation failed for {context.destination}: {len(e.issues)} issues")
            return _failed(ImportStage.VALIDATED, e, file_count=file_count)

        try:
            rows = await self.store.read(context.destination)
        except (StoreReadError, NetworkError) as e:
            logger.error(f"Could not read {context.destination}: {e}")
            return _failed(ImportStage.FETCHED_EXISTING, e, file_count=file_count)

        ledger = decode_store_rows(rows)
        existing_count = len(ledger.transactions)
        logger.info(f"{existing_count} transactions already in {context.destination}")

        new_transactions = find_new_transactions(transactions, ledger.transactions)
        new_count = len(new_transactions)

        if not new_transactions:
            logger.info(f"Nothing new to write to {context.destination}")
            return UploadResult(success=True, existing_count=existing_count, file_count=file_count)

        rows_to_write = encode_transactions(new_transactions)
        if ledger.needs_header:
            rows_to_write = [header_row(), *rows_to_write]

        try:
            await self.store.append(context.destination, rows_to_write)
        except (StoreWriteError, NetworkError) as e:
            logger.error(f"Append to {context.destination} failed: {e}")
            return _failed(
                ImportStage.APPENDED,
                e,
                existing_count=existing_count,
                file_count=file_count,
                new_count=new_count,
                new_transactions=new_transactions,
            )

        logger.info(f"Wrote {new_count} transactions to {context.destination}")
        return UploadResult(
            success=True,
            existing_count=existing_count,
            file_count=file_count,
            new_count=new_count,
            written_count=new_count,
            new_transactions=new_transactions,
        )

    async def import_batch(self, uploads: list[FileUpload]) -> list[UploadSummary]:
        """Import files one after another; a failing file does not stop the rest."""
        summaries = []

        for upload in uploads:
            try:
                institution = resolve_institution(upload.institution, upload.filename, upload.contents)
            except ParseError as e:
                summaries.append(
                    UploadSummary(
                        file_name=upload.filename,
                        institution_name="Unknown",
                        result=_failed(ImportStage.PARSED, e),
                    )
                )
                continue

            context = self.create_context(institution, upload.owner)
            result = await self.import_file(context, upload.contents)
            summaries.append(
                UploadSummary(
                    file_name=upload.filename,
                    institution_name=context.info.name,
                    result=result,
                )
            )

        succeeded = sum(1 for summary in summaries if summary.result.success)
        logger.info(f"Batch import finished: {succeeded}/{len(summaries)} files succeeded")
        return summaries


def build_store(settings: Settings) -> TabularStore:
    if settings.store_backend == "sheets":
        return GoogleSheetsStore(
            spreadsheet_id=settings.google_sheets_id,
            access_token=settings.google_access_token,
            base_url=settings.sheets_api_url,
            timeout=settings.http_timeout,
        )

    settings.ensure_directories()
    return SqliteStore(settings.db_path)


def build_orchestrator(settings: Settings) -> ImportOrchestrator:
    """Wire the store, rate provider and converter described by ``settings``."""
    provider = ExchangeRatesApiProvider(
        api_key=settings.exchange_rates_api_key,
        base_url=settings.exchange_rates_url,
        timeout=settings.http_timeout,
    )
    converter = CurrencyConverter(
        provider,
        cache=RateCache(),
        reporting_currency=settings.reporting_currency,
    )
    return ImportOrchestrator(build_store(settings), converter)
