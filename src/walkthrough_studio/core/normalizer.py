"""Coerce loose section/step graphs into the canonical script shape.

Everything that reaches storage passes through ``normalize``. The rules:

- non-list or empty input becomes one "Untitled" section with one empty step
- a section always ends up with at least one step (an empty placeholder if needed)
- booleans default to False; string booleans use the ``true/yes/y/1`` table
- a step marked pass/fail is always marked required
"""

from collections.abc import Mapping
from typing import Any, Optional, Tuple

from .models import RawImport, Script, Section, Step

UNTITLED = "Untitled"
TRUE_STRINGS = frozenset({"true", "yes", "y", "1"})


def coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


def _get(obj: Any, *names: str, default: Any = None) -> Any:
    """Read the first present field among ``names`` from a mapping or object."""
    for name in names:
        if isinstance(obj, Mapping):
            if name in obj:
                return obj[name]
        elif hasattr(obj, name):
            return getattr(obj, name)
    return default


def _coerce_tags(value: Any) -> Optional[Tuple[str, ...]]:
    if isinstance(value, (list, tuple)):
        return tuple(str(t) for t in value)
    return None


def _coerce_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def normalize_step(raw: Any) -> Step:
    if isinstance(raw, str):
        return Step(script=raw)
    if not isinstance(raw, (Mapping, Step)):
        return Step()

    script = _get(raw, "script")
    label = _get(raw, "label")
    pass_fail = coerce_bool(_get(raw, "passFail", "pass_fail", default=False))
    required = coerce_bool(_get(raw, "required", default=False)) or pass_fail

    return Step(
        script="" if script is None else str(script),
        label=None if label is None or label == "" else str(label),
        must_say=coerce_bool(_get(raw, "mustSay", "must_say", default=False)),
        required=required,
        pass_fail=pass_fail,
        skip=coerce_bool(_get(raw, "skip", default=False)),
        tags=_coerce_tags(_get(raw, "tags")),
    )


def normalize_section(raw: Any) -> Section:
    if not isinstance(raw, (Mapping, Section)):
        return Section(title=UNTITLED, steps=(Step(),))

    title = _get(raw, "section", "title")
    steps = tuple(normalize_step(s) for s in _coerce_list(_get(raw, "steps")))
    if not steps:
        steps = (Step(),)

    return Section(
        title=UNTITLED if title is None else str(title),
        critical=coerce_bool(_get(raw, "critical", default=False)),
        pass_fail=coerce_bool(_get(raw, "passFail", "pass_fail", default=False)),
        steps=steps,
    )


def normalize(raw: Any) -> Script:
    """Return the canonical script for any loose input.

    Accepts a ``RawImport``, a list of section-like mappings, or an
    already-canonical script (normalization is idempotent).
    """
    if isinstance(raw, RawImport):
        raw = raw.sections
    sections = _coerce_list(raw)
    if not sections:
        return Script((Section(title=UNTITLED, steps=(Step(),)),))
    return Script(tuple(normalize_section(s) for s in sections))
