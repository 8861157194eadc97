"""Read-only projection of a walkthrough for human review.

Nothing here writes to a store; the preview is rebuilt from the script on
every call.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import Config
from ..core.models import Script, WalkthroughDocument, script_to_list
from ..core.normalizer import normalize
from ..core.validator import ValidationResult, validate


@dataclass(frozen=True)
class ScriptStats:
    sections: int = 0
    steps: int = 0
    required: int = 0
    pass_fail: int = 0
    must_say: int = 0
    skip: int = 0
    critical_sections: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "sections": self.sections,
            "steps": self.steps,
            "required": self.required,
            "passFail": self.pass_fail,
            "mustSay": self.must_say,
            "skip": self.skip,
            "criticalSections": self.critical_sections,
        }


@dataclass(frozen=True)
class Preview:
    """A script with its stats and validation output."""
    script: Script
    stats: ScriptStats
    validation: ValidationResult
    label: str = ""
    class_code: str = ""
    token: str = ""
    status: Optional[str] = None
    version: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "classCode": self.class_code,
            "token": self.token,
            "status": self.status,
            "version": self.version,
            "sections": script_to_list(self.script),
            "stats": self.stats.to_dict(),
            "validation": self.validation.to_dict(),
        }


def script_stats(script: Script) -> ScriptStats:
    steps = [step for section in script for step in section.steps]
    return ScriptStats(
        sections=len(script),
        steps=len(steps),
        required=sum(1 for s in steps if s.required),
        pass_fail=sum(1 for s in steps if s.pass_fail),
        must_say=sum(1 for s in steps if s.must_say),
        skip=sum(1 for s in steps if s.skip),
        critical_sections=sum(1 for s in script if s.critical),
    )


def build_preview(source: Union[WalkthroughDocument, Any], label: str = "",
                  class_code: str = "") -> Preview:
    """Preview a stored document, or any raw/canonical script."""
    if isinstance(source, WalkthroughDocument):
        return Preview(
            script=source.script,
            stats=script_stats(source.script),
            validation=validate(source.script),
            label=source.label,
            class_code=source.class_code,
            token=source.token,
            status=source.status.value,
            version=source.version,
        )
    script = normalize(source)
    if label == "" and hasattr(source, "label"):
        label = source.label or ""
    if class_code == "" and hasattr(source, "class_code"):
        class_code = source.class_code or ""
    return Preview(
        script=script,
        stats=script_stats(script),
        validation=validate(script),
        label=label,
        class_code=class_code,
    )


_env: Optional[Environment] = None


def _environment() -> Environment:
    global _env
    if _env is None:
        _env = Environment(
            loader=FileSystemLoader(str(Config.TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _env


def render_preview_html(preview: Preview) -> str:
    template = _environment().get_template("preview.html.j2")
    return template.render(preview=preview, stats=preview.stats,
                           problems=preview.validation.problems)
