"""Tests for the Flask JSON API."""

import base64
import io
from unittest.mock import patch

import pytest

from conftest import SAMPLE_CSV, SAMPLE_MARKDOWN
from walkthrough_studio.core.document_store import MemoryDocumentStore
from walkthrough_studio.core.errors import StoreError
from walkthrough_studio.services.defaults import seed_defaults
from walkthrough_studio.web.app import create_app

AUTHOR = {"X-Actor-Role": "author", "X-Organization-Id": "org-1", "X-Actor-Id": "alice"}
REVIEWER = {"X-Actor-Role": "reviewer", "X-Organization-Id": "org-1", "X-Actor-Id": "rita"}
OTHER_ORG = {"X-Actor-Role": "author", "X-Organization-Id": "org-2", "X-Actor-Id": "bob"}


@pytest.fixture
def api_store():
    store = MemoryDocumentStore()
    seed_defaults(store)
    return store


@pytest.fixture
def client(api_store):
    app = create_app(api_store)
    app.config["TESTING"] = True
    return app.test_client()


def import_doc(client, script):
    resp = client.post("/api/walkthroughs/import", headers=AUTHOR,
                       json={"format": "structured", "content": script, "classCode": "A"})
    assert resp.status_code == 201
    return resp.get_json()["document"]


class TestStatelessEndpoints:
    def test_capabilities(self, client):
        data = client.get("/api/capabilities").get_json()
        assert "markdown" in data["formats"]
        assert "in-review" in data["statuses"]

    def test_parse_markdown(self, client):
        resp = client.post("/api/parse", json={"format": "md", "content": SAMPLE_MARKDOWN})
        assert resp.status_code == 200
        preview = resp.get_json()["preview"]
        assert preview["label"] == "Class A - East Campus"
        assert preview["stats"]["sections"] == 2

    def test_parse_upload(self, client):
        resp = client.post(
            "/api/parse",
            data={"file": (io.BytesIO(SAMPLE_CSV.encode("utf-8")), "walk.csv")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["preview"]["stats"]["steps"] == 3

    def test_parse_error(self, client):
        resp = client.post("/api/parse", json={"format": "json", "content": "{oops"})
        assert resp.status_code == 400
        assert "JSON parse error" in resp.get_json()["error"]

    def test_parse_requires_format(self, client):
        assert client.post("/api/parse", json={"content": "x"}).status_code == 400

    def test_bad_base64(self, client):
        resp = client.post("/api/parse", json={"format": "xlsx", "contentBase64": "!!notbase64"})
        assert resp.status_code == 400

    def test_base64_content(self, client):
        encoded = base64.b64encode(SAMPLE_CSV.encode("utf-8")).decode("ascii")
        resp = client.post("/api/parse", json={"format": "csv", "contentBase64": encoded})
        assert resp.status_code == 200

    def test_validate(self, client, valid_script):
        assert client.post("/api/validate", json={"script": valid_script}).get_json()["ok"]
        data = client.post("/api/validate", json={"script": []}).get_json()
        assert data["problems"] == ["Script must contain at least one section."]

    def test_published_resolution(self, client):
        resp = client.get("/api/published/Class%20B", headers={"X-Organization-Id": "org-1"})
        assert resp.status_code == 200
        assert resp.get_json()["walkthrough"]["isDefault"] is True
        assert client.get("/api/published/tanker").status_code == 404


class TestWalkthroughEndpoints:
    def test_missing_role_header(self, client):
        resp = client.get("/api/walkthroughs")
        assert resp.status_code == 400
        assert "X-Actor-Role" in resp.get_json()["error"]

    def test_list(self, client):
        data = client.get("/api/walkthroughs", headers=AUTHOR).get_json()
        assert len(data["walkthroughs"]) == 3

    def test_list_bad_status(self, client):
        assert client.get("/api/walkthroughs?status=done", headers=AUTHOR).status_code == 400

    def test_create_blank(self, client):
        resp = client.post("/api/walkthroughs", headers=AUTHOR, json={"classCode": "B"})
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["document"]["status"] == "draft"
        assert body["validation"]["ok"] is False

    def test_create_forbidden_for_student(self, client):
        resp = client.post("/api/walkthroughs", json={"classCode": "B"},
                           headers={"X-Actor-Role": "student", "X-Organization-Id": "org-1"})
        assert resp.status_code == 403

    def test_import_parse_failure(self, client):
        resp = client.post("/api/walkthroughs/import", headers=AUTHOR,
                           json={"format": "csv", "content": "a,b\n1,2\n", "classCode": "A"})
        assert resp.status_code == 400
        assert resp.get_json()["reason"] == "parse"

    def test_get_and_save(self, client, valid_script):
        doc = import_doc(client, valid_script)
        got = client.get(f"/api/walkthroughs/{doc['id']}", headers=AUTHOR)
        assert got.status_code == 200

        saved = client.put(f"/api/walkthroughs/{doc['id']}", headers=AUTHOR,
                           json={"label": "Renamed", "revision": doc["revision"]})
        assert saved.status_code == 200
        assert saved.get_json()["document"]["label"] == "Renamed"

        stale = client.put(f"/api/walkthroughs/{doc['id']}", headers=AUTHOR,
                           json={"label": "Again", "revision": doc["revision"]})
        assert stale.status_code == 409
        assert stale.get_json()["reason"] == "conflict"

    def test_get_other_organization(self, client, valid_script):
        doc = import_doc(client, valid_script)
        assert client.get(f"/api/walkthroughs/{doc['id']}", headers=OTHER_ORG).status_code == 403

    def test_not_found(self, client):
        assert client.get("/api/walkthroughs/wt_nope", headers=AUTHOR).status_code == 404

    def test_review_flow(self, client, valid_script):
        doc = import_doc(client, valid_script)
        base = f"/api/walkthroughs/{doc['id']}"

        assert client.post(f"{base}/approve", headers=REVIEWER).status_code == 409
        assert client.post(f"{base}/submit", headers=AUTHOR).status_code == 200
        assert client.post(f"{base}/approve", headers=AUTHOR).status_code == 403

        changes = client.post(f"{base}/request-changes", headers=REVIEWER, json={"note": "Fix belts"})
        assert changes.get_json()["document"]["reviewNotes"] == "Fix belts"
        assert client.post(f"{base}/resubmit", headers=AUTHOR).status_code == 200

        published = client.post(f"{base}/approve-and-publish", headers=REVIEWER)
        assert published.status_code == 200
        assert published.get_json()["document"]["version"] == 1

        resolved = client.get("/api/published/A", headers={"X-Organization-Id": "org-1"})
        assert resolved.get_json()["walkthrough"]["id"] == doc["id"]

        history = client.get(f"{base}/history", headers=AUTHOR).get_json()["events"]
        assert [e["action"] for e in history][-1] == "approve_and_publish"

    def test_submit_invalid_is_422(self, client):
        doc = client.post("/api/walkthroughs", headers=AUTHOR, json={"classCode": "A"}).get_json()
        resp = client.post(f"/api/walkthroughs/{doc['document']['id']}/submit", headers=AUTHOR)
        assert resp.status_code == 422
        assert resp.get_json()["problems"]

    def test_unknown_action(self, client, valid_script):
        doc = import_doc(client, valid_script)
        resp = client.post(f"/api/walkthroughs/{doc['id']}/teleport", headers=AUTHOR)
        assert resp.status_code == 404

    def test_duplicate_and_delete(self, client, valid_script):
        doc = import_doc(client, valid_script)
        copy = client.post(f"/api/walkthroughs/{doc['id']}/duplicate", headers=AUTHOR)
        assert copy.status_code == 201
        copy_id = copy.get_json()["document"]["id"]
        assert client.delete(f"/api/walkthroughs/{copy_id}", headers=AUTHOR).status_code == 200
        assert client.get(f"/api/walkthroughs/{copy_id}", headers=AUTHOR).status_code == 404

    def test_export(self, client, valid_script):
        doc = import_doc(client, valid_script)
        resp = client.get(f"/api/walkthroughs/{doc['id']}/export", headers=AUTHOR)
        assert resp.status_code == 200
        assert 'filename="class-a.json"' in resp.headers["Content-Disposition"]
        assert resp.get_json()["version"] == 1

    def test_preview_html(self, client, valid_script):
        doc = import_doc(client, valid_script)
        resp = client.get(f"/api/walkthroughs/{doc['id']}/preview", headers=AUTHOR)
        assert resp.status_code == 200
        assert resp.mimetype == "text/html"
        assert b"Air Brake Check" in resp.data

    def test_store_failure_is_503(self, client, api_store):
        with patch.object(api_store, "query", side_effect=StoreError("database is locked")):
            resp = client.get("/api/walkthroughs", headers=AUTHOR)
        assert resp.status_code == 503
        assert resp.get_json()["retryable"] is True
