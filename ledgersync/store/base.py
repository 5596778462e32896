"""Ledger store interface.

A store is a set of named destinations (spreadsheet tabs), each holding rows
in the fixed column order Month, Year, Date, Amount, AmountEur, Payee,
TransactionType, Message, Category. Destinations are provisioned outside the
import flow; imports only read and append.
"""

from typing import Protocol, Union

Cell = Union[str, int, float, None]

LEDGER_RANGE = "A1:I"
LEDGER_WIDTH = 9


class TabularStore(Protocol):
    """Read/append access to ledger destinations."""

    async def read(self, destination: str, range_spec: str = LEDGER_RANGE) -> list[list[Cell]]:
        """
        Return the raw rows of ``destination``.

        Raises:
            StoreReadError: If the destination does not exist or cannot be read
            NetworkError: On timeouts and transport failures
        """
        ...

    async def append(self, destination: str, rows: list[list[Cell]]) -> None:
        """
        Append rows after the last non-empty row of ``destination``.

        Raises:
            StoreWriteError: If the rows were not accepted
            NetworkError: On timeouts and transport failures
        """
        ...
