"""Class designation -> content token resolution.

Tokens are storage keys, so ``to_token`` must be total: it never raises and
never returns an empty string for input that has any content.
"""

import hashlib
import re
from typing import Any, Dict

CODE_TO_TOKEN: Dict[str, str] = {
    "A": "class-a",
    "A-WO-AIR-ELEC": "class-a-wo-air-elec",
    "A-WO-HYD-ELEC": "class-a-wo-hyd-elec",
    "A-NO-AIR-ELECTRIC": "class-a-wo-air-elec",
    "A-NO-HYD-ELECTRIC": "class-a-wo-hyd-elec",
    "B": "class-b",
    "PASSENGER-BUS": "passenger-bus",
    "BUS": "passenger-bus",
}

TOKEN_LABELS: Dict[str, str] = {
    "class-a": "Class A",
    "class-a-wo-air-elec": "Class A (No Air/Electric)",
    "class-a-wo-hyd-elec": "Class A (No Hyd/Electric)",
    "class-b": "Class B",
    "passenger-bus": "Passenger Bus",
}

_SEPARATORS = re.compile(r"[\s_/]+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_CLASS_PREFIX = re.compile(r"^CLASS-")
# "no air/electric", "w/o hyd and electric", ...
_NO_AIR = re.compile(r"-(?:NO|WO|W-O|WITHOUT)-AIR(?:-AND)?-ELEC(?:TRIC)?$")
_NO_HYD = re.compile(r"-(?:NO|WO|W-O|WITHOUT)-HYD(?:RAULIC)?(?:-AND)?-ELEC(?:TRIC)?$")


def _as_code(text: str) -> str:
    code = _SEPARATORS.sub("-", text.strip().upper())
    code = re.sub(r"[^A-Z0-9-]", "", code)
    code = re.sub(r"-{2,}", "-", code).strip("-")
    code = _CLASS_PREFIX.sub("", code)
    code = _NO_AIR.sub("-WO-AIR-ELEC", code)
    code = _NO_HYD.sub("-WO-HYD-ELEC", code)
    return code


def slugify(text: str) -> str:
    return _NON_ALNUM.sub("-", text.lower()).strip("-")


def to_token(value: Any) -> str:
    """Canonicalize a class designation ("Class A", "class_a", "A") to a token."""
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""

    known = CODE_TO_TOKEN.get(_as_code(text))
    if known:
        return known

    slug = slugify(text)
    if slug:
        return slug
    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()[:10]
    return f"token-{digest}"


def infer_label_from_token(token: str) -> str:
    """Human title for a token; known tokens get their curated label."""
    if token in TOKEN_LABELS:
        return TOKEN_LABELS[token]
    return " ".join(part.capitalize() for part in str(token or "").split("-") if part)
