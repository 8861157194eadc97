from .models import (
    ActorContext, DocumentEvent, DocumentSource, DocumentStatus, RawImport, Role,
    Script, Section, Step, WalkthroughDocument,
)
from .errors import (
    DuplicateDocumentError, ParseError, ProtectedDocumentError, SpreadsheetUnavailableError,
    StaleDocumentError, StoreError, WalkthroughError,
)
from .normalizer import normalize
from .validator import ValidationResult, validate
from .tokens import infer_label_from_token, to_token
from .document_store import ANY, DocumentStore, MemoryDocumentStore
from .sqlite_store import SqliteDocumentStore

__all__ = [
    "ActorContext", "DocumentEvent", "DocumentSource", "DocumentStatus", "RawImport", "Role",
    "Script", "Section", "Step", "WalkthroughDocument",
    "DuplicateDocumentError", "ParseError", "ProtectedDocumentError", "SpreadsheetUnavailableError",
    "StaleDocumentError", "StoreError", "WalkthroughError",
    "normalize", "ValidationResult", "validate", "infer_label_from_token", "to_token",
    "ANY", "DocumentStore", "MemoryDocumentStore", "SqliteDocumentStore",
]
