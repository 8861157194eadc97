"""Tests for the Typer command-line interface."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import SAMPLE_MARKDOWN
from walkthrough_studio.core.errors import StoreError
from walkthrough_studio.core.models import ActorContext, DocumentStatus, RawImport, Role
from walkthrough_studio.core.sqlite_store import SqliteDocumentStore
from walkthrough_studio.services.workflow import WalkthroughWorkflow
from walkthrough_studio.ui.cli import app

runner = CliRunner()

AUTHOR = ActorContext(role=Role.AUTHOR, organization_id="org-1", actor_id="alice")


@pytest.fixture
def db(tmp_path):
    return tmp_path / "walkthroughs.db"


@pytest.fixture
def draft(db, valid_script):
    workflow = WalkthroughWorkflow(SqliteDocumentStore(db))
    raw = RawImport(format="structured", sections=valid_script)
    return workflow.import_raw(AUTHOR, raw, class_code="A").document


def org_args(db):
    return ["--org", "org-1", "--db", str(db)]


class TestCheckAndParse:
    def test_check_defaults(self):
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 0
        assert "All walkthroughs valid" in result.output

    def test_check_invalid_file(self, tmp_path):
        path = tmp_path / "bad.md"
        path.write_text("## Engine\n\n", encoding="utf-8")
        result = runner.invoke(app, ["check", str(path)])
        assert result.exit_code == 1

    def test_parse_markdown_json(self, tmp_path):
        path = tmp_path / "walk.md"
        path.write_text(SAMPLE_MARKDOWN, encoding="utf-8")
        result = runner.invoke(app, ["parse", str(path), "--json"])
        assert result.exit_code == 0
        assert "Engine Compartment" in result.output

    def test_parse_unknown_extension(self, tmp_path):
        path = tmp_path / "walk.pdf"
        path.write_text("x", encoding="utf-8")
        result = runner.invoke(app, ["parse", str(path)])
        assert result.exit_code == 1

    def test_parse_missing_file(self, tmp_path):
        result = runner.invoke(app, ["parse", str(tmp_path / "nope.md")])
        assert result.exit_code == 1


class TestStoredCommands:
    def test_seed_is_idempotent(self, db):
        first = runner.invoke(app, ["seed", "--db", str(db)])
        assert first.exit_code == 0
        assert "Seeded" in first.output
        second = runner.invoke(app, ["seed", "--db", str(db)])
        assert "Defaults already present" in second.output

    def test_import_file(self, db, tmp_path):
        path = tmp_path / "walk.md"
        path.write_text(SAMPLE_MARKDOWN, encoding="utf-8")
        result = runner.invoke(app, ["import", str(path), "--class", "A", *org_args(db)])
        assert result.exit_code == 0
        assert "Imported as draft" in result.output

        docs = SqliteDocumentStore(db).query(organization_id="org-1")
        assert len(docs) == 1
        assert docs[0].status is DocumentStatus.DRAFT

    def test_unknown_role(self, db):
        result = runner.invoke(app, ["list", "--role", "pilot", "--db", str(db)])
        assert result.exit_code == 1
        assert "Unknown role" in result.output

    def test_review_cycle(self, db, draft):
        submitted = runner.invoke(app, ["submit", draft.id, *org_args(db)])
        assert submitted.exit_code == 0

        sent_back = runner.invoke(app, ["review", draft.id, "--request-changes", "Fix belts",
                                        *org_args(db)])
        assert sent_back.exit_code == 0

        resubmitted = runner.invoke(app, ["submit", draft.id, *org_args(db)])
        assert resubmitted.exit_code == 0

        published = runner.invoke(app, ["review", draft.id, "--approve", "--publish",
                                         *org_args(db)])
        assert published.exit_code == 0
        assert "Approved and published" in published.output
        assert SqliteDocumentStore(db).get(draft.id).status is DocumentStatus.PUBLISHED

    def test_review_needs_one_decision(self, db, draft):
        result = runner.invoke(app, ["review", draft.id, "--approve", "--reject", *org_args(db)])
        assert result.exit_code == 1

    def test_author_cannot_approve(self, db, draft):
        runner.invoke(app, ["submit", draft.id, *org_args(db)])
        result = runner.invoke(app, ["review", draft.id, "--approve", "--role", "author",
                                     *org_args(db)])
        assert result.exit_code == 1
        assert SqliteDocumentStore(db).get(draft.id).status is DocumentStatus.IN_REVIEW

    def test_list(self, db, draft):
        result = runner.invoke(app, ["list", *org_args(db)])
        assert result.exit_code == 0
        assert "Walkthroughs (1)" in result.output

    def test_export(self, db, draft, tmp_path):
        target = tmp_path / "out.json"
        result = runner.invoke(app, ["export", draft.id, "--output", str(target), *org_args(db)])
        assert result.exit_code == 0
        data = json.loads(target.read_text(encoding="utf-8"))
        assert data["id"] == draft.id
        assert data["classCode"] == "A"

    def test_preview_html(self, db, draft, tmp_path):
        target = tmp_path / "preview.html"
        result = runner.invoke(app, ["preview", draft.id, "--html", str(target), *org_args(db)])
        assert result.exit_code == 0
        assert "Air Brake Check" in target.read_text(encoding="utf-8")

    def test_preview_missing(self, db):
        result = runner.invoke(app, ["preview", "wt_missing", *org_args(db)])
        assert result.exit_code == 1

    @pytest.mark.parametrize("method,args", [
        ("get", ["submit", "{id}"]),
        ("list_documents", ["list"]),
        ("approve_and_publish", ["review", "{id}", "--approve", "--publish"]),
        ("export", ["export", "{id}"]),
    ])
    def test_store_failure_is_reported(self, db, draft, method, args):
        argv = [a.format(id=draft.id) for a in args] + org_args(db)
        with patch(f"walkthrough_studio.ui.cli.WalkthroughWorkflow.{method}",
                   side_effect=StoreError("database is locked")):
            result = runner.invoke(app, argv)
        assert result.exit_code == 1
        assert not isinstance(result.exception, StoreError)
        assert "database is locked" in result.output
        assert "safe to retry" in result.output
