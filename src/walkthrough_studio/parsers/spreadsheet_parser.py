"""Import walkthroughs from .xlsx spreadsheets.

Reads the first sheet with pandas (openpyxl engine), treats the first row as
headers and then follows the delimited-text rules exactly. pandas and
openpyxl are optional; call ``is_spreadsheet_available()`` before offering
the option.
"""

import importlib.util
import io
import logging
from pathlib import Path
from typing import Any, Optional, Union

from ..core.errors import ParseError, SpreadsheetUnavailableError
from ..core.models import RawImport
from .delimited_parser import rows_to_sections

logger = logging.getLogger(__name__)

REQUIRED_MODULES = ("pandas", "openpyxl")


def is_spreadsheet_available() -> bool:
    """Check whether spreadsheet decoding libraries are installed."""
    return all(importlib.util.find_spec(name) is not None for name in REQUIRED_MODULES)


class SpreadsheetParser:
    """Parse the first worksheet of an uploaded workbook."""

    def _read_first_sheet(self, source: Union[bytes, str, Path]):
        if not is_spreadsheet_available():
            raise SpreadsheetUnavailableError()
        import pandas as pd

        handle: Any = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else str(source)
        try:
            return pd.read_excel(
                handle,
                sheet_name=0,
                header=None,
                dtype=str,
                keep_default_na=False,
                engine="openpyxl",
            )
        except Exception as exc:
            # pandas, openpyxl and zipfile each raise their own types for non-workbook input
            raise ParseError(
                f"Spreadsheet could not be read: {type(exc).__name__}: {exc}",
                fmt="spreadsheet",
            ) from exc

    def parse(self, source: Union[bytes, str, Path], label: Optional[str] = None,
              class_code: Optional[str] = None, version: Optional[int] = None) -> RawImport:
        if source is None or (isinstance(source, (bytes, bytearray)) and not source):
            raise ParseError("Spreadsheet file is empty.", fmt="spreadsheet")
        if isinstance(source, (str, Path)) and not Path(source).exists():
            raise ParseError(f"Spreadsheet file not found: {source}", fmt="spreadsheet")

        frame = self._read_first_sheet(source)
        rows = frame.values.tolist()
        if not rows:
            return RawImport(format="spreadsheet", sections=[], label=label,
                             class_code=class_code, version=version)

        headers, body = rows[0], rows[1:]
        logger.debug("Spreadsheet headers: %s (%d data rows)", headers, len(body))
        return RawImport(
            format="spreadsheet",
            sections=rows_to_sections(headers, body, fmt="spreadsheet"),
            label=label,
            class_code=class_code,
            version=version,
        )


def parse_spreadsheet(source: Union[bytes, str, Path], **meta: Any) -> RawImport:
    return SpreadsheetParser().parse(source, **meta)
