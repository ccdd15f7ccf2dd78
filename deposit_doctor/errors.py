"""Error kinds raised while ingesting deposit and Shopify files."""

from __future__ import annotations


class ParseError(ValueError):
    """A file could not be turned into rows.

    Parsing is all-or-nothing at the file level: when this is raised no
    partial result has been handed to the caller.
    """

    def __init__(
        self,
        message: str,
        *,
        file_name: str | None = None,
        header_row_index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.file_name = file_name
        self.header_row_index = header_row_index


class EmptyWorkbookError(ParseError):
    """No sheet, or the first sheet has no occupied range."""


class NoHeadersFoundError(ParseError):
    """Header discovery failed even after falling back to row 0."""


class NoDataRowsError(ParseError):
    """Headers were found but no data row survived below them."""


class InsufficientRowsError(ParseError):
    """The sheet has fewer rows than the requested header row index."""


class SettingsError(ValueError):
    """Deposit settings are malformed."""
