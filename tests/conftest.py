"""Shared fixtures."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from walkthrough_studio.core.document_store import MemoryDocumentStore  # noqa: E402
from walkthrough_studio.core.models import ActorContext, Role  # noqa: E402
from walkthrough_studio.core.sqlite_store import SqliteDocumentStore  # noqa: E402
from walkthrough_studio.services.workflow import WalkthroughWorkflow  # noqa: E402


VALID_SCRIPT = [
    {
        "section": "Engine Compartment",
        "steps": [
            {"label": "Oil Level", "script": "Check the oil level on the dipstick.",
             "mustSay": True, "required": True},
            {"label": "Belts", "script": "Inspect belts for cracks and tension."},
        ],
    },
    {
        "section": "In-Cab",
        "critical": True,
        "steps": [
            {"label": "Air Brake Check", "script": "Perform the three-point air brake check.",
             "mustSay": True, "required": True, "passFail": True},
        ],
    },
]

SAMPLE_MARKDOWN = """# Class A - East Campus

## Engine Compartment
- **Oil Level:** Check the dipstick. [must] [required]
- Coolant is at or above the minimum mark. [tags: fluids, engine]
  Check the reservoir cap is tight.

## In-Cab [critical]
1. **Air Brake Check:** Three-point check. [pf]
"""

SAMPLE_CSV = """Section,Step Label,Script,Must Say,Required,Pass/Fail
Engine Compartment,Oil Level,Check the dipstick.,yes,yes,
Engine Compartment,Belts,Inspect belts.,,,
In-Cab,Air Brake Check,Three-point check.,y,,1
In-Cab,,,,,
"""


@pytest.fixture
def valid_script():
    return [dict(section, steps=[dict(s) for s in section["steps"]]) for section in VALID_SCRIPT]


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteDocumentStore(tmp_path / "walkthroughs.db")


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryDocumentStore()
    return SqliteDocumentStore(tmp_path / "walkthroughs.db")


@pytest.fixture
def workflow(store):
    return WalkthroughWorkflow(store)


@pytest.fixture
def author():
    return ActorContext(role=Role.AUTHOR, organization_id="org-1", actor_id="alice")


@pytest.fixture
def reviewer():
    return ActorContext(role=Role.REVIEWER, organization_id="org-1", actor_id="rita")


@pytest.fixture
def superadmin():
    return ActorContext(role=Role.SUPERADMIN, actor_id="root")


@pytest.fixture
def student():
    return ActorContext(role=Role.STUDENT, organization_id="org-1", actor_id="sam")


@pytest.fixture
def other_author():
    return ActorContext(role=Role.AUTHOR, organization_id="org-2", actor_id="bob")
