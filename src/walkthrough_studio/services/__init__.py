"""Workflow, preview, exchange and default-content services."""

from .defaults import load_default_scripts, seed_defaults
from .exchange import export_document, export_filename, export_json
from .preview import Preview, ScriptStats, build_preview, render_preview_html, script_stats
from .workflow import FailureReason, WalkthroughWorkflow, WorkflowResult, can

__all__ = [
    "load_default_scripts", "seed_defaults",
    "export_document", "export_filename", "export_json",
    "Preview", "ScriptStats", "build_preview", "render_preview_html", "script_stats",
    "FailureReason", "WalkthroughWorkflow", "WorkflowResult", "can",
]
