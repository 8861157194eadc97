"""Review workflow engine for walkthrough documents.

States::

    draft ──submit──> in-review ──approve──> approved ──publish──> published ──(superseded)──> archived
      ^                 │  │                   │  │
      │                 │  └─approve_and_publish──> published
      │                 ├──request_changes──> changes-requested ──resubmit──> in-review
      │                 └──reject──> rejected
      └── duplicate (from any state, always a new document)

Every call takes an explicit ``ActorContext``. Guard failures (role,
organization, state, validation, stale revision) come back as a failed
``WorkflowResult`` and never write to the store. ``StoreError`` from the
store propagates to the caller unchanged.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..config import Config
from ..core.document_store import ANY, DocumentStore
from ..core.errors import ParseError, StaleDocumentError
from ..core.models import (
    ActorContext, DocumentEvent, DocumentSource, DocumentStatus, RawImport, Role,
    WalkthroughDocument, new_document_id, utc_now_iso,
)
from ..core.normalizer import normalize
from ..core.tokens import infer_label_from_token, to_token
from ..core.validator import ValidationResult, validate
from ..parsers import ImportFormat, parse_source
from .exchange import export_document

logger = logging.getLogger(__name__)


class FailureReason(Enum):
    NOT_FOUND = "not-found"
    FORBIDDEN = "forbidden"
    INVALID_STATE = "invalid-state"
    INVALID = "invalid"
    CONFLICT = "conflict"
    PARSE = "parse"


@dataclass
class WorkflowResult:
    """Outcome of a workflow call.

    On failure ``document`` (when present) is the unchanged stored document
    and ``problems`` holds the human-readable reasons.
    """
    ok: bool
    document: Optional[WalkthroughDocument] = None
    problems: List[str] = field(default_factory=list)
    reason: Optional[FailureReason] = None
    validation: Optional[ValidationResult] = None
    archived: List[WalkthroughDocument] = field(default_factory=list)
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, document: WalkthroughDocument, **kwargs: Any) -> "WorkflowResult":
        return cls(ok=True, document=document, **kwargs)

    @classmethod
    def failure(cls, reason: FailureReason, *problems: str, **kwargs: Any) -> "WorkflowResult":
        return cls(ok=False, reason=reason, problems=list(problems), **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "document": self.document.to_dict() if self.document else None,
            "problems": list(self.problems),
            "reason": self.reason.value if self.reason else None,
            "validation": self.validation.to_dict() if self.validation else None,
            "archived": [d.id for d in self.archived],
        }


AUTHOR_ROLES: FrozenSet[Role] = frozenset({Role.AUTHOR, Role.ADMIN, Role.SUPERADMIN})
REVIEW_ROLES: FrozenSet[Role] = frozenset({Role.REVIEWER, Role.SUPERADMIN})

ACTION_ROLES: Dict[str, FrozenSet[Role]] = {
    "create": AUTHOR_ROLES,
    "import": AUTHOR_ROLES,
    "edit": AUTHOR_ROLES,
    "submit": AUTHOR_ROLES,
    "resubmit": AUTHOR_ROLES,
    "duplicate": AUTHOR_ROLES,
    "delete": AUTHOR_ROLES,
    "export": AUTHOR_ROLES | REVIEW_ROLES,
    "view": AUTHOR_ROLES | REVIEW_ROLES,
    "approve": REVIEW_ROLES,
    "publish": REVIEW_ROLES,
    "approve_and_publish": REVIEW_ROLES,
    "request_changes": REVIEW_ROLES,
    "reject": REVIEW_ROLES,
}

# action -> (allowed source statuses, target status)
TRANSITIONS: Dict[str, Tuple[FrozenSet[DocumentStatus], DocumentStatus]] = {
    "submit": (frozenset({DocumentStatus.DRAFT, DocumentStatus.CHANGES_REQUESTED}),
               DocumentStatus.IN_REVIEW),
    "resubmit": (frozenset({DocumentStatus.CHANGES_REQUESTED}), DocumentStatus.IN_REVIEW),
    "approve": (frozenset({DocumentStatus.IN_REVIEW}), DocumentStatus.APPROVED),
    "publish": (frozenset({DocumentStatus.APPROVED}), DocumentStatus.PUBLISHED),
    "approve_and_publish": (frozenset({DocumentStatus.IN_REVIEW}), DocumentStatus.PUBLISHED),
    "request_changes": (frozenset({DocumentStatus.IN_REVIEW, DocumentStatus.APPROVED}),
                        DocumentStatus.CHANGES_REQUESTED),
    "reject": (frozenset({DocumentStatus.IN_REVIEW, DocumentStatus.APPROVED}),
               DocumentStatus.REJECTED),
}

# Transitions that require the script to pass validation.
VALIDATED_ACTIONS = frozenset({"submit", "resubmit", "approve", "publish", "approve_and_publish"})

UNDELETABLE_STATUSES = frozenset({
    DocumentStatus.IN_REVIEW, DocumentStatus.APPROVED, DocumentStatus.PUBLISHED,
})

FORMAT_NAMES = {
    ImportFormat.MARKDOWN: "Markdown",
    ImportFormat.CSV: "CSV",
    ImportFormat.SPREADSHEET: "Spreadsheet",
    ImportFormat.STRUCTURED: "JSON",
}


def can(role: Role, action: str) -> bool:
    """Role matrix. Students and instructors only read published content."""
    return role in ACTION_ROLES.get(action, frozenset())


def _verb(action: str) -> str:
    return action.replace("_", " ")


class WalkthroughWorkflow:
    """Authoring and review operations over a ``DocumentStore``."""

    def __init__(self, store: DocumentStore, max_import_bytes: Optional[int] = None):
        self.store = store
        self.max_import_bytes = max_import_bytes or Config.MAX_IMPORT_BYTES

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def _can_read(actor: ActorContext, doc: WalkthroughDocument) -> bool:
        if actor.is_superadmin or doc.is_default:
            return True
        return doc.organization_id == actor.organization_id

    @staticmethod
    def _can_write(actor: ActorContext, doc: WalkthroughDocument) -> bool:
        if actor.is_superadmin:
            return True
        if doc.is_default:
            return False
        return doc.organization_id == actor.organization_id

    def _load(self, actor: ActorContext, document_id: str, action: str,
              expected_revision: Optional[int] = None, write: bool = True
              ) -> Tuple[Optional[WalkthroughDocument], Optional[WorkflowResult]]:
        if not can(actor.role, action):
            return None, WorkflowResult.failure(
                FailureReason.FORBIDDEN,
                f"Role '{actor.role.value}' may not {_verb(action)} walkthroughs.",
            )
        doc = self.store.get(document_id)
        if doc is None:
            return None, WorkflowResult.failure(
                FailureReason.NOT_FOUND, f"Walkthrough {document_id} was not found."
            )
        allowed = self._can_write(actor, doc) if write else self._can_read(actor, doc)
        if not allowed:
            return doc, WorkflowResult.failure(
                FailureReason.FORBIDDEN,
                f"Walkthrough {document_id} belongs to another organization"
                if not doc.is_default else f"Default walkthrough {document_id} is read-only.",
                document=doc,
            )
        if expected_revision is not None and expected_revision != doc.revision:
            return doc, WorkflowResult.failure(
                FailureReason.CONFLICT,
                f"Walkthrough {document_id} was changed by someone else "
                f"(you have revision {expected_revision}, current is {doc.revision}). "
                "Reload and try again.",
                document=doc,
            )
        return doc, None

    def _event(self, actor: ActorContext, doc: WalkthroughDocument, action: str,
               from_status: Optional[DocumentStatus], note: Optional[str] = None) -> DocumentEvent:
        return DocumentEvent(
            document_id=doc.id,
            action=action,
            actor_id=actor.actor_id,
            role=actor.role.value,
            from_status=from_status.value if from_status else None,
            to_status=doc.status.value,
            note=note,
        )

    @staticmethod
    def _touch(doc: WalkthroughDocument, actor: ActorContext) -> None:
        doc.updated_at = utc_now_iso()
        doc.updated_by = actor.actor_id

    def _stale(self, exc: StaleDocumentError, doc: WalkthroughDocument) -> WorkflowResult:
        logger.info("Stale write rejected for %s: %s", doc.id, exc)
        current = self.store.get(doc.id)
        return WorkflowResult.failure(
            FailureReason.CONFLICT, f"{exc}. Reload and try again.", document=current or doc,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _new_document(self, actor: ActorContext, class_code: Optional[str], label: Optional[str],
                      script: Any, source: DocumentSource, action: str,
                      organization_id: Optional[str] = None,
                      duplicated_from: Optional[str] = None) -> WorkflowResult:
        if not can(actor.role, action):
            return WorkflowResult.failure(
                FailureReason.FORBIDDEN,
                f"Role '{actor.role.value}' may not {_verb(action)} walkthroughs.",
            )
        token = to_token(class_code)
        if not token:
            return WorkflowResult.failure(FailureReason.INVALID, "A class code is required.")

        if actor.is_superadmin and organization_id is not None:
            owner = organization_id
        else:
            owner = actor.organization_id
        if owner is None:
            return WorkflowResult.failure(
                FailureReason.INVALID, "An organization is required for a walkthrough.",
            )
        now = utc_now_iso()
        doc = WalkthroughDocument(
            id=new_document_id(),
            organization_id=owner,
            token=token,
            label=(label or "").strip() or infer_label_from_token(token),
            class_code=str(class_code).strip(),
            version=None,
            status=DocumentStatus.DRAFT,
            script=normalize(script),
            source=source,
            is_default=False,
            duplicated_from=duplicated_from,
            created_by=actor.actor_id,
            updated_by=actor.actor_id,
            created_at=now,
            updated_at=now,
        )
        stored = self.store.insert(doc, event=self._event(actor, doc, action, None))
        validation = validate(stored.script)
        logger.info("Created walkthrough %s (%s) for org=%s via %s; %d problem(s)",
                    stored.id, token, owner, action, len(validation.problems))
        return WorkflowResult.success(stored, validation=validation)

    def create_blank(self, actor: ActorContext, class_code: str, label: Optional[str] = None,
                     organization_id: Optional[str] = None) -> WorkflowResult:
        """New draft with one empty placeholder step."""
        return self._new_document(actor, class_code, label, None, DocumentSource.VISUAL,
                                  "create", organization_id=organization_id)

    def import_raw(self, actor: ActorContext, raw: RawImport, class_code: Optional[str] = None,
                   label: Optional[str] = None,
                   organization_id: Optional[str] = None) -> WorkflowResult:
        """Store parser output as a new draft. Validation problems do not block."""
        try:
            source = DocumentSource(raw.format)
        except ValueError:
            source = DocumentSource.STRUCTURED
        return self._new_document(
            actor, class_code or raw.class_code, label or raw.label, raw, source, "import",
            organization_id=organization_id,
        )

    def import_source(self, actor: ActorContext, fmt: Any, payload: Any,
                      class_code: Optional[str] = None, label: Optional[str] = None,
                      organization_id: Optional[str] = None) -> WorkflowResult:
        """Parse ``payload`` as ``fmt`` and store the result as a draft.

        Unreadable input is reported as a problem; no document is created.
        """
        if not can(actor.role, "import"):
            return WorkflowResult.failure(
                FailureReason.FORBIDDEN, f"Role '{actor.role.value}' may not import walkthroughs."
            )
        try:
            fmt = ImportFormat.from_value(fmt)
        except ValueError:
            return WorkflowResult.failure(FailureReason.PARSE, f"Unsupported import format: {fmt}")
        if isinstance(payload, (str, bytes, bytearray)) and len(payload) > self.max_import_bytes:
            return WorkflowResult.failure(
                FailureReason.PARSE,
                f"{FORMAT_NAMES[fmt]} input is larger than {self.max_import_bytes} bytes.",
            )
        try:
            raw = parse_source(fmt, payload, label=label, class_code=class_code)
        except ParseError as exc:
            logger.info("Import rejected (%s): %s", fmt.value, exc)
            return WorkflowResult.failure(FailureReason.PARSE,
                                          f"{FORMAT_NAMES[fmt]} parse error: {exc}")
        return self.import_raw(actor, raw, class_code=class_code, label=label,
                               organization_id=organization_id)

    def duplicate(self, actor: ActorContext, document_id: str, label: Optional[str] = None,
                  organization_id: Optional[str] = None) -> WorkflowResult:
        """Copy any readable document into a fresh draft. The source is untouched."""
        source, failure = self._load(actor, document_id, "duplicate", write=False)
        if failure:
            return failure
        return self._new_document(
            actor, source.class_code or source.token, label or f"{source.label} (Copy)",
            source.script, DocumentSource.DUPLICATE, "duplicate",
            organization_id=organization_id if organization_id is not None else source.organization_id,
            duplicated_from=source.id,
        )

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def save_draft(self, actor: ActorContext, document_id: str, script: Any = None,
                   label: Optional[str] = None, source: Optional[DocumentSource] = None,
                   expected_revision: Optional[int] = None) -> WorkflowResult:
        """Replace script and/or label while the document is editable.

        The script is normalized on the way in; validation problems are
        reported but do not block saving.
        """
        doc, failure = self._load(actor, document_id, "edit", expected_revision)
        if failure:
            return failure
        if not doc.is_editable:
            return WorkflowResult.failure(
                FailureReason.INVALID_STATE,
                f"Walkthrough {doc.id} is {doc.status.value}; only drafts and documents "
                "with requested changes can be edited.",
                document=doc,
            )

        revision = doc.revision
        if script is not None:
            doc.script = normalize(script)
        if label is not None:
            doc.label = label.strip() or doc.label
        if source is not None:
            doc.source = source
        self._touch(doc, actor)
        try:
            stored = self.store.update(doc, revision, event=self._event(actor, doc, "edit", doc.status))
        except StaleDocumentError as exc:
            return self._stale(exc, doc)
        return WorkflowResult.success(stored, validation=validate(stored.script))

    def delete(self, actor: ActorContext, document_id: str,
               expected_revision: Optional[int] = None) -> WorkflowResult:
        doc, failure = self._load(actor, document_id, "delete", expected_revision)
        if failure:
            return failure
        if doc.status in UNDELETABLE_STATUSES:
            return WorkflowResult.failure(
                FailureReason.INVALID_STATE,
                f"Walkthrough {doc.id} is {doc.status.value} and cannot be deleted.",
                document=doc,
            )
        try:
            self.store.delete(doc.id, doc.revision)
        except StaleDocumentError as exc:
            return self._stale(exc, doc)
        logger.info("Deleted walkthrough %s by %s", doc.id, actor.actor_id)
        return WorkflowResult.success(doc)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, actor: ActorContext, document_id: str, action: str,
                    note: Optional[str] = None,
                    expected_revision: Optional[int] = None) -> WorkflowResult:
        doc, failure = self._load(actor, document_id, action, expected_revision)
        if failure:
            return failure

        allowed, target = TRANSITIONS[action]
        if doc.status not in allowed:
            expected = " or ".join(sorted(s.value for s in allowed))
            logger.info("Refused %s on %s: status is %s", action, doc.id, doc.status.value)
            return WorkflowResult.failure(
                FailureReason.INVALID_STATE,
                f"Cannot {_verb(action)} walkthrough {doc.id}: status is {doc.status.value}, "
                f"expected {expected}.",
                document=doc,
            )

        if (target is DocumentStatus.PUBLISHED and doc.organization_id is None
                and not doc.is_default):
            return WorkflowResult.failure(
                FailureReason.INVALID,
                f"An organization is required to publish walkthrough {doc.id}.",
                document=doc,
            )

        validation = None
        if action in VALIDATED_ACTIONS:
            validation = validate(doc.script)
            if not validation.ok:
                logger.info("Refused %s on %s: %d validation problem(s)",
                            action, doc.id, len(validation.problems))
                return WorkflowResult.failure(
                    FailureReason.INVALID, *validation.problems,
                    document=doc, validation=validation,
                )

        if action == "request_changes" and not (note or "").strip():
            return WorkflowResult.failure(
                FailureReason.INVALID, "A note is required when requesting changes.",
                document=doc,
            )

        from_status = doc.status
        revision = doc.revision
        doc.status = target
        if target is DocumentStatus.IN_REVIEW:
            doc.review_notes = None
        elif target in (DocumentStatus.CHANGES_REQUESTED, DocumentStatus.REJECTED):
            doc.review_notes = (note or "").strip() or None
        self._touch(doc, actor)
        event = self._event(actor, doc, action, from_status, note)

        try:
            if target is DocumentStatus.PUBLISHED:
                stored, archived = self.store.publish(doc, revision, event=event)
            else:
                stored, archived = self.store.update(doc, revision, event=event), []
        except StaleDocumentError as exc:
            return self._stale(exc, doc)

        logger.info("Walkthrough %s: %s %s -> %s by %s (%s)", stored.id, action,
                    from_status.value, stored.status.value, actor.actor_id, actor.role.value)
        for old in archived:
            logger.info("Walkthrough %s archived, superseded by %s v%s",
                        old.id, stored.id, stored.version)
        return WorkflowResult.success(stored, validation=validation, archived=archived)

    def submit(self, actor: ActorContext, document_id: str,
               expected_revision: Optional[int] = None) -> WorkflowResult:
        return self._transition(actor, document_id, "submit", expected_revision=expected_revision)

    def resubmit(self, actor: ActorContext, document_id: str,
                 expected_revision: Optional[int] = None) -> WorkflowResult:
        return self._transition(actor, document_id, "resubmit", expected_revision=expected_revision)

    def approve(self, actor: ActorContext, document_id: str,
                expected_revision: Optional[int] = None) -> WorkflowResult:
        return self._transition(actor, document_id, "approve", expected_revision=expected_revision)

    def publish(self, actor: ActorContext, document_id: str,
                expected_revision: Optional[int] = None) -> WorkflowResult:
        return self._transition(actor, document_id, "publish", expected_revision=expected_revision)

    def approve_and_publish(self, actor: ActorContext, document_id: str,
                            expected_revision: Optional[int] = None) -> WorkflowResult:
        return self._transition(actor, document_id, "approve_and_publish",
                                expected_revision=expected_revision)

    def request_changes(self, actor: ActorContext, document_id: str, note: str,
                        expected_revision: Optional[int] = None) -> WorkflowResult:
        return self._transition(actor, document_id, "request_changes", note=note,
                                expected_revision=expected_revision)

    def reject(self, actor: ActorContext, document_id: str, note: Optional[str] = None,
               expected_revision: Optional[int] = None) -> WorkflowResult:
        return self._transition(actor, document_id, "reject", note=note,
                                expected_revision=expected_revision)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, actor: ActorContext, document_id: str) -> WorkflowResult:
        doc, failure = self._load(actor, document_id, "view", write=False)
        if failure:
            return failure
        return WorkflowResult.success(doc, validation=validate(doc.script))

    def export(self, actor: ActorContext, document_id: str) -> WorkflowResult:
        """Serialize to the exchange format. Allowed in every state; no write."""
        doc, failure = self._load(actor, document_id, "export", write=False)
        if failure:
            return failure
        return WorkflowResult.success(doc, data=export_document(doc))

    def history(self, actor: ActorContext, document_id: str) -> List[DocumentEvent]:
        doc, failure = self._load(actor, document_id, "view", write=False)
        if failure:
            return []
        return self.store.events(doc.id)

    def list_documents(self, actor: ActorContext, status: Optional[DocumentStatus] = None,
                       token: Optional[str] = None, source: Optional[DocumentSource] = None,
                       search: Optional[str] = None, sort: str = "updated_at",
                       descending: bool = True) -> List[WalkthroughDocument]:
        """Documents visible to ``actor``: its organization's plus the defaults."""
        token = to_token(token) if token else None
        if actor.is_superadmin:
            docs = self.store.query(organization_id=ANY, status=status, token=token)
        elif can(actor.role, "view"):
            docs = self.store.query(organization_id=None, status=status, token=token,
                                    is_default=True)
            if actor.organization_id is not None:
                docs += self.store.query(organization_id=actor.organization_id,
                                         status=status, token=token)
        else:
            docs = [d for d in self.store.query(organization_id=ANY,
                                                status=DocumentStatus.PUBLISHED, token=token)
                    if d.is_default or d.organization_id == actor.organization_id]
            if status is not None and status is not DocumentStatus.PUBLISHED:
                docs = []

        if source is not None:
            docs = [d for d in docs if d.source is source]
        if search:
            needle = search.strip().lower()
            docs = [d for d in docs
                    if needle in f"{d.label} {d.class_code} {d.token} {d.id}".lower()]

        if sort in ("label", "class_code", "token", "status"):
            key = lambda d: str(getattr(d, sort) if sort != "status" else d.status.value).lower()
        else:
            key = lambda d: d.updated_at
        return sorted(docs, key=key, reverse=descending)

    def resolve_published(self, organization_id: Optional[str],
                          class_code: str) -> Optional[WalkthroughDocument]:
        """Content students see: the organization's published override, else the default."""
        token = to_token(class_code)
        if not token:
            return None
        if organization_id is not None:
            doc = self.store.find_published(organization_id, token)
            if doc is not None:
                return doc
        return self.store.find_published(None, token)
