"""SQLite-backed ledger store.

Cells are kept as TEXT, so numbers come back as strings exactly like they do
from a spreadsheet backend, and trailing empty cells are dropped on read.
"""

import asyncio
import re
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from ledgersync.exceptions import StoreReadError, StoreWriteError
from ledgersync.store.base import LEDGER_RANGE, LEDGER_WIDTH, Cell

CELL_COLUMNS = [f"c{i}" for i in range(LEDGER_WIDTH)]

# SQL schema
SCHEMA = f"""
CREATE TABLE IF NOT EXISTS destinations (
    name TEXT PRIMARY KEY,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS ledger_rows (
    destination TEXT NOT NULL REFERENCES destinations(name),
    position INTEGER NOT NULL,
    {", ".join(f"{column} TEXT" for column in CELL_COLUMNS)},
    PRIMARY KEY (destination, position)
);
"""

RANGE_PATTERN = re.compile(r"^([A-Z]+)(\d*):([A-Z]+)(\d*)$")


def _column_index(letters: str) -> int:
    index = 0
    for letter in letters:
        index = index * 26 + (ord(letter) - ord("A") + 1)
    return index - 1


def _parse_range(range_spec: str) -> tuple[int, int, int, int | None]:
    """A1 range -> (first column, last column, first row, last row), zero-based."""
    match = RANGE_PATTERN.match(range_spec.strip().upper())
    if not match:
        raise StoreReadError(f"Unable to parse range: {range_spec}")
    start_col, start_row, end_col, end_row = match.groups()
    first_row = int(start_row) - 1 if start_row else 0
    last_row = int(end_row) - 1 if end_row else None
    return _column_index(start_col), _column_index(end_col), first_row, last_row


class SqliteStore:
    """SQLite ledger store manager."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def provision(self, destination: str) -> None:
        """Create a destination; existing destinations are left untouched."""
        with self._get_connection() as conn:
            conn.execute("INSERT OR IGNORE INTO destinations (name) VALUES (?)", (destination,))
            conn.commit()

    def destinations(self) -> list[str]:
        """Names of all provisioned destinations."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT name FROM destinations ORDER BY name")
            return [row[0] for row in cursor.fetchall()]

    def _exists(self, conn: sqlite3.Connection, destination: str) -> bool:
        cursor = conn.execute("SELECT 1 FROM destinations WHERE name = ?", (destination,))
        return cursor.fetchone() is not None

    async def read(self, destination: str, range_spec: str = LEDGER_RANGE) -> list[list[Cell]]:
        """
        Read rows of a destination within ``range_spec``.

        Raises:
            StoreReadError: If the destination is not provisioned or the range is malformed
        """
        return await asyncio.to_thread(self._read_rows, destination, range_spec)

    def _read_rows(self, destination: str, range_spec: str) -> list[list[Cell]]:
        first_col, last_col, first_row, last_row = _parse_range(range_spec)

        with self._get_connection() as conn:
            if not self._exists(conn, destination):
                raise StoreReadError(
                    f'Destination "{destination}" does not exist. Please create it first.'
                )
            cursor = conn.execute(
                f"SELECT {', '.join(CELL_COLUMNS)} FROM ledger_rows WHERE destination = ? ORDER BY position",
                (destination,),
            )
            stored = cursor.fetchall()

        selected = stored[first_row : None if last_row is None else last_row + 1]
        rows = [_trim_trailing_empty(list(row[first_col : last_col + 1])) for row in selected]

        # Like a spreadsheet, trailing empty rows are not part of the data range
        while rows and not rows[-1]:
            rows.pop()
        return rows

    async def append(self, destination: str, rows: list[list[Cell]]) -> None:
        """
        Append rows after the current last row.

        Raises:
            StoreWriteError: If the destination is missing or a row is too wide
        """
        await asyncio.to_thread(self._append_rows, destination, rows)

    def _append_rows(self, destination: str, rows: list[list[Cell]]) -> None:
        for row in rows:
            if len(row) > LEDGER_WIDTH:
                raise StoreWriteError(f"Row has {len(row)} cells, at most {LEDGER_WIDTH} allowed")

        with self._get_connection() as conn:
            if not self._exists(conn, destination):
                raise StoreWriteError(f'Destination "{destination}" does not exist.')

            cursor = conn.execute(
                "SELECT COALESCE(MAX(position), -1) FROM ledger_rows WHERE destination = ?", (destination,)
            )
            next_position = cursor.fetchone()[0] + 1

            placeholders = ", ".join("?" for _ in range(LEDGER_WIDTH + 2))
            try:
                conn.executemany(
                    f"INSERT INTO ledger_rows (destination, position, {', '.join(CELL_COLUMNS)}) "
                    f"VALUES ({placeholders})",
                    [
                        (destination, next_position + offset, *_pad(row))
                        for offset, row in enumerate(rows)
                    ],
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreWriteError(f"Failed to append to '{destination}': {e}") from e


def _pad(row: list[Cell]) -> list[Cell]:
    return list(row) + [None] * (LEDGER_WIDTH - len(row))


def _trim_trailing_empty(cells: list[Cell]) -> list[Cell]:
    cells = ["" if cell is None else cell for cell in cells]
    while cells and cells[-1] == "":
        cells.pop()
    return cells
