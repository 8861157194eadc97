"""Document persistence layer for Walkthrough Studio.

Stores hold ``WalkthroughDocument`` records keyed by id and addressable by
(organization, token). Every write is a compare-and-swap on ``revision``;
publishing is a single atomic step that also archives the previous holder
of the ``published`` slot for the same key.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from .errors import (
    DuplicateDocumentError, ProtectedDocumentError, StaleDocumentError, StoreError,
)
from .models import DocumentEvent, DocumentStatus, WalkthroughDocument, utc_now_iso

logger = logging.getLogger(__name__)


class _Any:
    def __repr__(self) -> str:
        return "ANY"


# Query sentinel: "do not filter on this field" (None means default documents).
ANY = _Any()


class DocumentStore(ABC):
    """Storage contract used by the workflow engine."""

    @abstractmethod
    def get(self, document_id: str) -> Optional[WalkthroughDocument]:
        """Return a copy of the stored document, or None."""

    @abstractmethod
    def insert(self, document: WalkthroughDocument,
               event: Optional[DocumentEvent] = None) -> WalkthroughDocument:
        """Store a new document. Returns the stored copy (revision 1)."""

    @abstractmethod
    def update(self, document: WalkthroughDocument, expected_revision: int,
               event: Optional[DocumentEvent] = None) -> WalkthroughDocument:
        """Replace a document if its stored revision is ``expected_revision``."""

    @abstractmethod
    def delete(self, document_id: str, expected_revision: int) -> bool:
        """Delete a document; False if it does not exist."""

    @abstractmethod
    def query(self, organization_id=ANY, status: Optional[DocumentStatus] = None,
              token: Optional[str] = None,
              is_default: Optional[bool] = None) -> List[WalkthroughDocument]:
        """Documents matching every given filter, most recently updated first."""

    @abstractmethod
    def max_version(self, organization_id: Optional[str], token: str) -> int:
        """Highest stamped version for the key, 0 when none."""

    @abstractmethod
    def publish(self, document: WalkthroughDocument, expected_revision: int,
                event: Optional[DocumentEvent] = None
                ) -> Tuple[WalkthroughDocument, List[WalkthroughDocument]]:
        """Atomically publish ``document`` and archive the previous holder.

        The store stamps the next version for the (organization, token) key
        inside the same unit. Returns the stored published document and the
        documents that were archived.
        """

    @abstractmethod
    def events(self, document_id: str) -> List[DocumentEvent]:
        """Audit trail for a document, oldest first."""

    def find_published(self, organization_id: Optional[str],
                       token: str) -> Optional[WalkthroughDocument]:
        found = self.query(organization_id=organization_id,
                           status=DocumentStatus.PUBLISHED, token=token)
        return found[0] if found else None


def archived_copy(document: WalkthroughDocument, now: str) -> WalkthroughDocument:
    """The superseded form of a published document."""
    archived = copy.deepcopy(document)
    archived.status = DocumentStatus.ARCHIVED
    archived.updated_at = now
    archived.revision = document.revision + 1
    return archived


def check_supersedes(incoming: WalkthroughDocument, held: WalkthroughDocument) -> None:
    """Platform defaults are only ever replaced by another default."""
    if held.is_default and not incoming.is_default:
        raise ProtectedDocumentError(
            f"Default walkthrough {held.id} can only be superseded by another default"
        )


def archive_event(old: WalkthroughDocument, incoming: WalkthroughDocument,
                  event: Optional[DocumentEvent]) -> DocumentEvent:
    return DocumentEvent(
        document_id=old.id,
        action="archive",
        actor_id=event.actor_id if event else None,
        role=event.role if event else None,
        from_status=DocumentStatus.PUBLISHED.value,
        to_status=DocumentStatus.ARCHIVED.value,
        note=f"Superseded by {incoming.id}",
    )


class MemoryDocumentStore(DocumentStore):
    """Process-local store. A single lock serializes every operation."""

    def __init__(self):
        self._docs: Dict[str, WalkthroughDocument] = {}
        self._events: List[DocumentEvent] = []
        self._lock = threading.Lock()

    def _check_revision(self, document_id: str, expected_revision: int) -> WalkthroughDocument:
        current = self._docs.get(document_id)
        if current is None:
            raise StoreError(f"Document {document_id} does not exist")
        if current.revision != expected_revision:
            raise StaleDocumentError(document_id, expected_revision, current.revision)
        return current

    def get(self, document_id: str) -> Optional[WalkthroughDocument]:
        with self._lock:
            doc = self._docs.get(document_id)
            return copy.deepcopy(doc) if doc else None

    def insert(self, document, event=None):
        with self._lock:
            if document.id in self._docs:
                raise DuplicateDocumentError(f"Document {document.id} already exists")
            stored = copy.deepcopy(document)
            stored.revision = 1
            self._docs[stored.id] = stored
            if event:
                self._events.append(event)
            logger.debug("Inserted %s", stored.id)
            return copy.deepcopy(stored)

    def update(self, document, expected_revision, event=None):
        with self._lock:
            self._check_revision(document.id, expected_revision)
            stored = copy.deepcopy(document)
            stored.revision = expected_revision + 1
            self._docs[stored.id] = stored
            if event:
                self._events.append(event)
            return copy.deepcopy(stored)

    def delete(self, document_id, expected_revision):
        with self._lock:
            if document_id not in self._docs:
                return False
            self._check_revision(document_id, expected_revision)
            del self._docs[document_id]
            return True

    def query(self, organization_id=ANY, status=None, token=None, is_default=None):
        with self._lock:
            found = [
                d for d in self._docs.values()
                if (organization_id is ANY or d.organization_id == organization_id)
                and (status is None or d.status == status)
                and (token is None or d.token == token)
                and (is_default is None or d.is_default == is_default)
            ]
            found.sort(key=lambda d: d.updated_at, reverse=True)
            return [copy.deepcopy(d) for d in found]

    def _max_version(self, organization_id, token):
        versions = [
            d.version for d in self._docs.values()
            if d.organization_id == organization_id and d.token == token and d.version
        ]
        return max(versions, default=0)

    def max_version(self, organization_id, token):
        with self._lock:
            return self._max_version(organization_id, token)

    def publish(self, document, expected_revision, event=None):
        with self._lock:
            self._check_revision(document.id, expected_revision)
            now = utc_now_iso()
            held = [
                d for d in self._docs.values()
                if d.id != document.id
                and d.status == DocumentStatus.PUBLISHED
                and d.organization_id == document.organization_id
                and d.token == document.token
            ]
            for d in held:
                check_supersedes(document, d)
            archived = [archived_copy(d, now) for d in held]
            stored = copy.deepcopy(document)
            stored.status = DocumentStatus.PUBLISHED
            stored.version = self._max_version(document.organization_id, document.token) + 1
            stored.revision = expected_revision + 1
            for old in archived:
                self._docs[old.id] = old
                self._events.append(archive_event(old, document, event))
            self._docs[stored.id] = stored
            if event:
                self._events.append(event)
            return copy.deepcopy(stored), [copy.deepcopy(d) for d in archived]

    def events(self, document_id):
        with self._lock:
            return [e for e in self._events if e.document_id == document_id]
