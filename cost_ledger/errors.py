"""Exception types raised by the ingestion and diagnostics paths."""

from __future__ import annotations


class CostLedgerError(Exception):
    """Base class for every error raised by cost-ledger."""


class SpreadsheetParseError(CostLedgerError, ValueError):
    """The spreadsheet buffer could not be read as a workbook or delimited text."""


class HeaderNotFoundError(CostLedgerError, ValueError):
    """No row with enough populated cells was found near the top of the sheet."""


class ColumnDetectionError(CostLedgerError, ValueError):
    """Neither a job-number column nor a project-name column could be found."""


class IngestOptionsError(CostLedgerError, ValueError):
    """The caller supplied inconsistent or invalid ingestion options."""


class RegistryError(CostLedgerError):
    """The project registry could not be read."""


class SnapshotWriteError(CostLedgerError):
    """The snapshot transaction failed and was rolled back."""

    def __init__(self, message: str, *, attempted: int = 0) -> None:
        super().__init__(message)
        self.attempted = attempted
