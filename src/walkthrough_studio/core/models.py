"""Canonical data models for Walkthrough Studio."""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple, NewType
from enum import Enum
from datetime import datetime, timezone
import uuid


class DocumentStatus(Enum):
    DRAFT = "draft"
    IN_REVIEW = "in-review"
    CHANGES_REQUESTED = "changes-requested"
    APPROVED = "approved"
    PUBLISHED = "published"
    REJECTED = "rejected"
    ARCHIVED = "archived"


# Statuses in which the script and label may still be changed.
EDITABLE_STATUSES = frozenset({DocumentStatus.DRAFT, DocumentStatus.CHANGES_REQUESTED})
TERMINAL_STATUSES = frozenset({DocumentStatus.REJECTED, DocumentStatus.ARCHIVED})


class DocumentSource(Enum):
    """Provenance tag. Informational only."""
    VISUAL = "visual"
    MARKDOWN = "markdown"
    CSV = "csv"
    SPREADSHEET = "spreadsheet"
    STRUCTURED = "structured"
    DEFAULT = "default"
    DUPLICATE = "duplicate"


class Role(Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    AUTHOR = "author"
    ADMIN = "admin"
    REVIEWER = "reviewer"
    SUPERADMIN = "superadmin"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_document_id() -> str:
    return f"wt_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Step:
    """One inspection action."""
    script: str = ""
    label: Optional[str] = None
    must_say: bool = False
    required: bool = False
    pass_fail: bool = False
    skip: bool = False
    tags: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.label is not None:
            data["label"] = self.label
        data.update({
            "script": self.script,
            "mustSay": self.must_say,
            "required": self.required,
            "passFail": self.pass_fail,
            "skip": self.skip,
        })
        if self.tags is not None:
            data["tags"] = list(self.tags)
        return data


@dataclass(frozen=True)
class Section:
    """Ordered group of steps under a heading."""
    title: str = "Untitled"
    critical: bool = False
    pass_fail: bool = False
    steps: Tuple[Step, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.title,
            "critical": self.critical,
            "passFail": self.pass_fail,
            "steps": [s.to_dict() for s in self.steps],
        }


# Only ``normalize()`` hands out values of this type.
Script = NewType("Script", Tuple[Section, ...])


def script_to_list(script: Script) -> List[Dict[str, Any]]:
    return [section.to_dict() for section in script]


@dataclass
class RawImport:
    """Loosely shaped parser output, not yet normalized.

    ``sections`` holds whatever the source produced; field names and types
    are not trusted until the normalizer has run.
    """
    format: str
    sections: Any = None
    label: Optional[str] = None
    class_code: Optional[str] = None
    version: Optional[int] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class ActorContext:
    """Who is calling the workflow engine."""
    role: Role
    organization_id: Optional[str] = None
    actor_id: Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role is Role.SUPERADMIN


@dataclass
class WalkthroughDocument:
    """Unit of storage, review and publication."""
    id: str = field(default_factory=new_document_id)
    organization_id: Optional[str] = None
    token: str = ""
    label: str = ""
    class_code: str = ""
    version: Optional[int] = None
    status: DocumentStatus = DocumentStatus.DRAFT
    script: Script = field(default_factory=lambda: Script(()))
    source: DocumentSource = DocumentSource.VISUAL
    is_default: bool = False
    review_notes: Optional[str] = None

    # Bookkeeping
    revision: int = 0
    duplicated_from: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "token": self.token,
            "label": self.label,
            "classCode": self.class_code,
            "version": self.version,
            "status": self.status.value,
            "script": script_to_list(self.script),
            "source": self.source.value,
            "isDefault": self.is_default,
            "reviewNotes": self.review_notes,
            "revision": self.revision,
            "duplicatedFrom": self.duplicated_from,
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WalkthroughDocument":
        # Imported here: the normalizer depends on this module.
        from .normalizer import normalize

        data = dict(data)
        renames = {
            "organizationId": "organization_id",
            "classCode": "class_code",
            "isDefault": "is_default",
            "reviewNotes": "review_notes",
            "duplicatedFrom": "duplicated_from",
            "createdBy": "created_by",
            "updatedBy": "updated_by",
            "createdAt": "created_at",
            "updatedAt": "updated_at",
        }
        for old, new in renames.items():
            if old in data:
                data[new] = data.pop(old)
        if isinstance(data.get("status"), str):
            try:
                data["status"] = DocumentStatus(data["status"])
            except ValueError:
                data["status"] = DocumentStatus.DRAFT
        if isinstance(data.get("source"), str):
            try:
                data["source"] = DocumentSource(data["source"])
            except ValueError:
                data["source"] = DocumentSource.VISUAL
        if "script" in data:
            data["script"] = normalize(data["script"])
        # Filter to only known fields to handle schema evolution
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)

    @property
    def key(self) -> Tuple[Optional[str], str]:
        """The (organization, token) content slot this document fills."""
        return (self.organization_id, self.token)

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES


@dataclass(frozen=True)
class DocumentEvent:
    """Audit record for one lifecycle action on a document."""
    document_id: str
    action: str
    actor_id: Optional[str] = None
    role: Optional[str] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    note: Optional[str] = None
    at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentId": self.document_id,
            "action": self.action,
            "actorId": self.actor_id,
            "role": self.role,
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "note": self.note,
            "at": self.at,
        }
