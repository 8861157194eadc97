"""Exception types raised by the walkthrough pipeline.

Workflow guard failures are not exceptions; they come back as
``WorkflowResult`` values. Exceptions are reserved for input that cannot be
read at all and for persistence failures.
"""


class WalkthroughError(Exception):
    """Base class for pipeline errors."""


class ParseError(WalkthroughError):
    """The source could not be interpreted as the requested format."""

    def __init__(self, message: str, fmt: str = ""):
        super().__init__(message)
        self.format = fmt


class SpreadsheetUnavailableError(ParseError):
    """Spreadsheet decoding libraries are not installed."""

    def __init__(self, message: str = (
        "Spreadsheet import is not available. "
        "Install with: pip install walkthrough-studio[spreadsheet]"
    )):
        super().__init__(message, fmt="spreadsheet")


class StoreError(WalkthroughError):
    """A persistence round-trip failed. Safe to retry."""

    retryable = True


class StaleDocumentError(StoreError):
    """The stored document changed since the caller read it."""

    def __init__(self, document_id: str, expected: int, actual: int):
        super().__init__(
            f"Document {document_id} was modified concurrently "
            f"(expected revision {expected}, found {actual})"
        )
        self.document_id = document_id
        self.expected = expected
        self.actual = actual


class DuplicateDocumentError(StoreError):
    """A document with the same id already exists."""

    retryable = False


class ProtectedDocumentError(StoreError):
    """The write would replace a platform default with non-default content."""

    retryable = False
