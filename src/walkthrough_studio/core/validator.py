"""Structural validation of a walkthrough script.

``validate`` checks the script as it is given to it. It does not normalize
first, so a step built by hand as pass/fail but not required is still
reported even though ``normalize`` would have fixed it.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    problems: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "problems": list(self.problems)}


def _field(obj: Any, *names: str) -> Any:
    for name in names:
        if isinstance(obj, Mapping):
            if name in obj:
                return obj[name]
        elif hasattr(obj, name):
            return getattr(obj, name)
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate(script: Any) -> ValidationResult:
    problems: List[str] = []

    if not isinstance(script, (list, tuple)) or not script:
        return ValidationResult(ok=False, problems=("Script must contain at least one section.",))

    for si, section in enumerate(script, start=1):
        title = _text(_field(section, "section", "title"))
        name = title or f"#{si}"
        if not title:
            problems.append(f"Section {si} is missing a title.")

        steps = _field(section, "steps")
        if not isinstance(steps, (list, tuple)) or not steps:
            problems.append(f'Section "{name}" has no steps.')
            continue

        for ti, step in enumerate(steps, start=1):
            if not _text(_field(step, "script")):
                problems.append(f'Section "{name}": step {ti} is missing script text.')
            if _field(step, "passFail", "pass_fail") is True and _field(step, "required") is not True:
                problems.append(
                    f'Section "{name}": step {ti} is pass/fail but not marked required.'
                )

    return ValidationResult(ok=not problems, problems=tuple(problems))
