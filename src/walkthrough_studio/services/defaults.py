"""Platform default walkthroughs shipped with the package."""

import logging
from pathlib import Path
from typing import List, Optional

from ..config import Config
from ..core.document_store import DocumentStore
from ..core.models import (
    DocumentSource, DocumentStatus, RawImport, WalkthroughDocument,
)
from ..core.normalizer import normalize
from ..core.tokens import infer_label_from_token, to_token
from ..parsers import parse_structured
from ..utils.file_handler import FileHandler

logger = logging.getLogger(__name__)


def load_default_imports(defaults_dir: Optional[Path] = None) -> List[RawImport]:
    """Parse every ``*.yaml`` file in the defaults directory, sorted by name."""
    directory = Path(defaults_dir or Config.DEFAULTS_DIR)
    imports = []
    for path in sorted(directory.glob("*.yaml")):
        raw = parse_structured(FileHandler.load_yaml(path))
        if not raw.class_code:
            raw.class_code = path.stem
        imports.append(raw)
    return imports


def load_default_scripts(defaults_dir: Optional[Path] = None) -> List[WalkthroughDocument]:
    """Default walkthroughs as unsaved published documents."""
    docs = []
    for raw in load_default_imports(defaults_dir):
        token = to_token(raw.class_code)
        docs.append(WalkthroughDocument(
            id=f"default-{token}",
            organization_id=None,
            token=token,
            label=raw.label or infer_label_from_token(token),
            class_code=raw.class_code,
            version=raw.version or 1,
            status=DocumentStatus.PUBLISHED,
            script=normalize(raw),
            source=DocumentSource.DEFAULT,
            is_default=True,
            created_by="system",
            updated_by="system",
        ))
    return docs


def seed_defaults(store: DocumentStore, defaults_dir: Optional[Path] = None) -> List[WalkthroughDocument]:
    """Insert any default walkthrough whose token has no default yet.

    Returns the documents that were inserted.
    """
    seeded = []
    for doc in load_default_scripts(defaults_dir):
        if store.query(organization_id=None, token=doc.token, is_default=True):
            logger.debug("Default %s already present", doc.token)
            continue
        seeded.append(store.insert(doc))
        logger.info("Seeded default walkthrough %s (%s)", doc.token, doc.label)
    return seeded
