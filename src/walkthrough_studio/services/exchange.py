"""Exchange format: ``{id, label, classCode, version, sections}``."""

import json
from typing import Any, Dict

from ..core.models import WalkthroughDocument, script_to_list


def export_document(doc: WalkthroughDocument) -> Dict[str, Any]:
    """Serializable form of ``doc``. Unpublished documents export as version 1."""
    return {
        "id": doc.id,
        "label": doc.label,
        "classCode": doc.class_code,
        "version": doc.version or 1,
        "sections": script_to_list(doc.script),
    }


def export_json(doc: WalkthroughDocument, indent: int = 2) -> str:
    return json.dumps(export_document(doc), indent=indent)


def export_filename(doc: WalkthroughDocument) -> str:
    return f"{doc.token or doc.id}.json"
