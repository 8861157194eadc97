"""Parse delimited text (CSV, TSV, pasted spreadsheet cells) into sections.

One row per step. Columns are found by case-insensitive header aliases and
rows are grouped into sections by the section column, in first-seen order.
Rows without script text are dropped.
"""

import csv
import io
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..core.errors import ParseError
from ..core.models import RawImport
from ..core.normalizer import TRUE_STRINGS

# Logical column -> accepted header spellings, in priority order.
HEADER_ALIASES: Dict[str, Sequence[str]] = {
    "section": ("section", "part", "area", "sectionname", "title"),
    "stepLabel": ("steplabel", "label", "item", "title"),
    "script": ("script", "text", "line", "content"),
    "mustSay": ("mustsay", "must", "say"),
    "required": ("required", "req"),
    "passFail": ("passfail", "pass", "pf"),
    "skip": ("skip", "omit"),
    "critical": ("critical", "sectioncritical"),
    "tags": ("tags", "tag"),
}

_HEADER_NOISE = re.compile(r"[^a-z0-9]+")
_TAG_SPLIT = re.compile(r"[;|]")


def normalize_header(header: Any) -> str:
    return _HEADER_NOISE.sub("", str(header if header is not None else "").lower())


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def cell_bool(value: Any) -> bool:
    return cell_text(value).lower() in TRUE_STRINGS


def build_header_map(headers: Iterable[Any]) -> Dict[str, Optional[int]]:
    """Map each logical column to a header index.

    A header is claimed by at most one logical column, so ``title`` is the
    section column when no better section header exists, and the step label
    column otherwise.
    """
    normalized = [normalize_header(h) for h in headers]
    claimed = set()
    mapping: Dict[str, Optional[int]] = {}
    for key, aliases in HEADER_ALIASES.items():
        mapping[key] = None
        for alias in aliases:
            matches = [i for i, h in enumerate(normalized) if h == alias and i not in claimed]
            if matches:
                mapping[key] = matches[0]
                claimed.add(matches[0])
                break
    return mapping


def rows_to_sections(headers: Sequence[Any], rows: Iterable[Sequence[Any]],
                     fmt: str = "csv") -> List[Dict[str, Any]]:
    """Aggregate step rows into section dicts. Shared by every tabular format."""
    columns = build_header_map(headers)
    if columns["script"] is None:
        raise ParseError(
            "No script column found. Expected one of: "
            + ", ".join(HEADER_ALIASES["script"]),
            fmt=fmt,
        )

    def cell(row: Sequence[Any], key: str) -> Any:
        index = columns[key]
        if index is None or index >= len(row):
            return None
        return row[index]

    sections: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        script = cell_text(cell(row, "script"))
        if not script:
            continue

        name = cell_text(cell(row, "section")) or "Untitled"
        section = sections.get(name)
        if section is None:
            section = {"section": name, "critical": False, "passFail": False, "steps": []}
            sections[name] = section

        step: Dict[str, Any] = {
            "script": script,
            "mustSay": cell_bool(cell(row, "mustSay")),
            "required": cell_bool(cell(row, "required")),
            "passFail": cell_bool(cell(row, "passFail")),
            "skip": cell_bool(cell(row, "skip")),
        }
        label = cell_text(cell(row, "stepLabel"))
        if label:
            step["label"] = label
        tags = [t.strip() for t in _TAG_SPLIT.split(cell_text(cell(row, "tags"))) if t.strip()]
        if tags:
            step["tags"] = tags

        if cell_bool(cell(row, "critical")):
            section["critical"] = True
        if step["passFail"]:
            section["passFail"] = True
        section["steps"].append(step)

    return list(sections.values())


def records_to_sections(records: Iterable[Mapping[str, Any]], fmt: str = "csv") -> List[Dict[str, Any]]:
    """Same as ``rows_to_sections`` for header-keyed records."""
    records = list(records)
    if not records:
        return []
    headers = list(records[0].keys())
    return rows_to_sections(headers, ([r.get(h) for h in headers] for r in records), fmt=fmt)


class DelimitedTextParser:
    """Parse pasted CSV/TSV text."""

    DELIMITERS = ",\t;"

    def _sniff(self, sample: str) -> str:
        try:
            return csv.Sniffer().sniff(sample, delimiters=self.DELIMITERS).delimiter
        except csv.Error:
            return ","

    def parse(self, text: Any, label: Optional[str] = None, class_code: Optional[str] = None,
              version: Optional[int] = None) -> RawImport:
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ParseError(f"CSV is not valid UTF-8: {exc}", fmt="csv") from exc
        if not isinstance(text, str) or not text.strip():
            raise ParseError("CSV input is empty.", fmt="csv")

        text = text.lstrip("\ufeff")
        first_line = text.strip().splitlines()[0]
        reader = csv.reader(io.StringIO(text.strip()), delimiter=self._sniff(first_line))
        try:
            rows = [row for row in reader]
        except csv.Error as exc:
            raise ParseError(f"CSV could not be read: {exc}", fmt="csv") from exc

        headers, body = rows[0], rows[1:]
        sections = rows_to_sections(headers, body, fmt="csv")
        return RawImport(
            format="csv",
            sections=sections,
            label=label,
            class_code=class_code,
            version=version,
        )


def parse_delimited(text: Any, **meta: Any) -> RawImport:
    return DelimitedTextParser().parse(text, **meta)
