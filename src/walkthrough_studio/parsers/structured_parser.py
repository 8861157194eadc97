"""Parse the canonical exchange format (JSON) or an already-decoded object."""

import json
from collections.abc import Mapping
from typing import Any, Optional

from ..core.errors import ParseError
from ..core.models import RawImport


def _as_version(value: Any) -> Optional[int]:
    try:
        version = int(value)
    except (TypeError, ValueError):
        return None
    return version if version >= 1 else None


class StructuredParser:
    """Accept a bare sections array or a ``{label, classCode, version, sections}`` wrapper."""

    def parse(self, payload: Any, label: Optional[str] = None, class_code: Optional[str] = None,
              version: Optional[int] = None) -> RawImport:
        if isinstance(payload, (bytes, bytearray)):
            try:
                payload = payload.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ParseError(f"JSON is not valid UTF-8: {exc}", fmt="structured") from exc
        if isinstance(payload, str):
            if not payload.strip():
                raise ParseError("JSON input is empty.", fmt="structured")
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise ParseError(f"JSON parse error: {exc}", fmt="structured") from exc

        if isinstance(payload, (list, tuple)):
            return RawImport(format="structured", sections=list(payload), label=label,
                             class_code=class_code, version=version)

        if isinstance(payload, Mapping):
            sections = payload.get("sections")
            if sections is None:
                sections = payload.get("script")
            doc_id = payload.get("id")
            return RawImport(
                format="structured",
                sections=sections,
                label=label or (str(payload["label"]) if payload.get("label") else None),
                class_code=class_code or (str(payload["classCode"]) if payload.get("classCode") else None),
                version=version or _as_version(payload.get("version")),
                id=str(doc_id) if doc_id else None,
            )

        raise ParseError(
            f"Expected a sections array or a walkthrough object, got {type(payload).__name__}.",
            fmt="structured",
        )


def parse_structured(payload: Any, **meta: Any) -> RawImport:
    return StructuredParser().parse(payload, **meta)
