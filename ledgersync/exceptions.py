"""Error hierarchy for statement imports."""

from __future__ import annotations

MAX_REPORTED_ISSUES = 5


class LedgerSyncError(Exception):
    """Base error for import failures."""


class ParseError(LedgerSyncError):
    """Raised when a file does not match the institution's expected layout."""

    def __init__(self, institution: str, cause: str | BaseException) -> None:
        self.institution = institution
        self.cause = cause
        super().__init__(f"{institution}: {cause}")


class ValidationError(LedgerSyncError):
    """Raised when parsed transactions violate the canonical invariants."""

    def __init__(self, issues: list[str]) -> None:
        self.issues = list(issues)
        shown = "\n".join(self.issues[:MAX_REPORTED_ISSUES])
        message = (
            "Invalid transaction data detected. This might be the wrong bank file format."
            f"\n\nIssues found:\n{shown}"
        )
        hidden = len(self.issues) - MAX_REPORTED_ISSUES
        if hidden > 0:
            message += f"\n... and {hidden} more issues"
        super().__init__(message)


class RateUnavailable(LedgerSyncError):
    """Raised when no usable exchange rate can be obtained."""


class NetworkError(LedgerSyncError):
    """Raised on timeouts and transport failures at an HTTP boundary."""


class StoreReadError(LedgerSyncError):
    """Raised when the ledger destination cannot be read."""


class StoreWriteError(LedgerSyncError):
    """Raised when appending to the ledger destination fails."""
