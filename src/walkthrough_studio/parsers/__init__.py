"""Format parsers. Each returns a ``RawImport`` for the normalizer."""

from enum import Enum
from pathlib import PurePath
from typing import Any, Optional

from ..core.models import RawImport
from .delimited_parser import DelimitedTextParser, parse_delimited
from .markdown_parser import MarkdownParser, parse_markdown
from .spreadsheet_parser import SpreadsheetParser, is_spreadsheet_available, parse_spreadsheet
from .structured_parser import StructuredParser, parse_structured


class ImportFormat(Enum):
    MARKDOWN = "markdown"
    CSV = "csv"
    SPREADSHEET = "spreadsheet"
    STRUCTURED = "structured"

    @classmethod
    def from_value(cls, value: Any) -> "ImportFormat":
        """Accept enum members, their values, and common aliases (md, json, xlsx)."""
        if isinstance(value, cls):
            return value
        aliases = {
            "md": cls.MARKDOWN,
            "tsv": cls.CSV,
            "xlsx": cls.SPREADSHEET,
            "json": cls.STRUCTURED,
        }
        text = str(value or "").strip().lower()
        if text in aliases:
            return aliases[text]
        return cls(text)


SUFFIX_FORMATS = {
    ".md": ImportFormat.MARKDOWN,
    ".markdown": ImportFormat.MARKDOWN,
    ".txt": ImportFormat.MARKDOWN,
    ".csv": ImportFormat.CSV,
    ".tsv": ImportFormat.CSV,
    ".xlsx": ImportFormat.SPREADSHEET,
    ".json": ImportFormat.STRUCTURED,
    ".yaml": ImportFormat.STRUCTURED,
    ".yml": ImportFormat.STRUCTURED,
}


def format_for_filename(filename: str) -> Optional[ImportFormat]:
    """Guess the import format from a file extension; None when unknown."""
    suffix = PurePath(str(filename or "")).suffix.lower()
    return SUFFIX_FORMATS.get(suffix)


def available_formats() -> list:
    formats = [ImportFormat.MARKDOWN, ImportFormat.CSV, ImportFormat.STRUCTURED]
    if is_spreadsheet_available():
        formats.insert(2, ImportFormat.SPREADSHEET)
    return formats


def parse_source(fmt: ImportFormat, payload: Any, label: Optional[str] = None,
                 class_code: Optional[str] = None, version: Optional[int] = None) -> RawImport:
    """Dispatch ``payload`` to the parser for ``fmt``.

    Raises ParseError when the payload cannot be read as that format.
    """
    meta = {"label": label, "class_code": class_code, "version": version}
    if fmt is ImportFormat.MARKDOWN:
        return parse_markdown(payload, **meta)
    if fmt is ImportFormat.CSV:
        return parse_delimited(payload, **meta)
    if fmt is ImportFormat.SPREADSHEET:
        return parse_spreadsheet(payload, **meta)
    if fmt is ImportFormat.STRUCTURED:
        return parse_structured(payload, **meta)
    raise ValueError(f"Unsupported import format: {fmt!r}")


__all__ = [
    "ImportFormat", "available_formats", "format_for_filename", "parse_source",
    "MarkdownParser", "DelimitedTextParser", "SpreadsheetParser", "StructuredParser",
    "parse_markdown", "parse_delimited", "parse_spreadsheet", "parse_structured",
    "is_spreadsheet_available",
]
