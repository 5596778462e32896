"""Google Sheets values API client used as the ledger store."""

import logging
from urllib.parse import quote

import httpx

from ledgersync.exceptions import NetworkError, StoreReadError, StoreWriteError
from ledgersync.store.base import LEDGER_RANGE, Cell

logger = logging.getLogger(__name__)

MISSING_RANGE_MARKERS = ("Unable to parse range", "Invalid range")


class GoogleSheetsStore:
    """Reads and appends ledger rows in one spreadsheet, one tab per destination."""

    def __init__(
        self,
        spreadsheet_id: str,
        access_token: str,
        base_url: str = "https://sheets.googleapis.com/v4",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/spreadsheets/{self.spreadsheet_id}",
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _a1(destination: str, range_spec: str | None = None) -> str:
        quoted = "'" + destination.replace("'", "''") + "'"
        target = f"{quoted}!{range_spec}" if range_spec else quoted
        return quote(target, safe="")

    async def read(self, destination: str, range_spec: str = LEDGER_RANGE) -> list[list[Cell]]:
        """
        Read raw rows; numbers come back unformatted so amounts keep a dot decimal.

        Raises:
            StoreReadError: If the tab does not exist or the request is rejected
            NetworkError: On timeouts and transport failures
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    f"/values/{self._a1(destination, range_spec)}",
                    params={"valueRenderOption": "UNFORMATTED_VALUE"},
                )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Reading sheet '{destination}' timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Reading sheet '{destination}' failed: {e}") from e

        if response.is_error:
            message = _error_message(response)
            if response.status_code == 400 and any(marker in message for marker in MISSING_RANGE_MARKERS):
                raise StoreReadError(
                    f'Sheet tab "{destination}" does not exist. Please create the sheet tab first.'
                )
            raise StoreReadError(
                "Failed to read from sheets, probably because the Sheet ID is incorrect. "
                f"Message from the Sheets API: {message}"
            )

        rows = response.json().get("values") or []
        logger.debug(f"Read {len(rows)} rows from '{destination}'")
        return rows

    async def append(self, destination: str, rows: list[list[Cell]]) -> None:
        """
        Append rows as raw values.

        Raises:
            StoreWriteError: If the append is rejected
            NetworkError: On timeouts and transport failures
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/values/{self._a1(destination)}:append",
                    params={"valueInputOption": "RAW"},
                    json={"values": rows},
                )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Appending to sheet '{destination}' timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Appending to sheet '{destination}' failed: {e}") from e

        if response.is_error:
            raise StoreWriteError(f"Failed to append to sheets: {_error_message(response)}")

        logger.info(f"Appended {len(rows)} rows to '{destination}'")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase or str(response.status_code)
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase or str(response.status_code)
