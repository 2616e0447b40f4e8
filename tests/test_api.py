"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from css_inliner.core.config import settings
from css_inliner.main import app

TEMPLATE = '<style>.foo{color:red}</style><div class="foo">{{name}}</div>'


@pytest.fixture
def client(fixtures_dir, monkeypatch):
    monkeypatch.setattr(settings, "template_directory", str(fixtures_dir))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def payload(fixtures_dir):
    return {"html": TEMPLATE, "template": "handlebars", "directory": str(fixtures_dir)}


def test_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_inline(client, payload):
    response = client.post("/v1/inline", json=payload)

    assert response.status_code == 200
    assert response.json() == {"mode": "inline", "html": '<div class="foo" style="color:red">{{name}}</div>'}


def test_critical_path(client, fixtures_dir):
    html = "<html><head><style>p{a:b} .x{c:d}</style></head><body><p>t</p></body></html>"
    response = client.post("/v1/critical-path", json={"html": html, "directory": str(fixtures_dir)})

    assert response.status_code == 200
    assert response.json()["html"] == "<html><head><style>p{a:b}</style></head><body><p>t</p></body></html>"


def test_template_none_disables_shielding(client, fixtures_dir):
    html = '<p>{{a "b"}}</p>'
    response = client.post("/v1/inline", json={"html": html, "template": "none", "directory": str(fixtures_dir)})

    assert response.json()["html"] == "<p>{{a &quot;b&quot;}}</p>"


def test_unknown_template_is_rejected(client, payload):
    response = client.post("/v1/inline", json={**payload, "template": "smarty"})
    assert response.status_code == 422


def test_missing_stylesheet_is_not_found(client, fixtures_dir):
    html = '<html><head><link rel="stylesheet" href="missing.css"></head></html>'
    response = client.post("/v1/critical-path", json={"html": html, "directory": str(fixtures_dir)})

    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


def test_invalid_css_is_unprocessable(client, fixtures_dir):
    html = "<style>h1 { color: red } .broken</style><h1>x</h1>"
    response = client.post("/v1/inline", json={"html": html, "directory": str(fixtures_dir)})

    assert response.status_code == 422
    assert response.json()["kind"] == "parse_failure"


class TestDirectoryConfinement:
    @pytest.fixture
    def template_root(self, tmp_path, monkeypatch):
        root = tmp_path / "templates"
        (root / "emails").mkdir(parents=True)
        (root / "emails" / "site.css").write_text("p { color: green }")
        (tmp_path / "creds.css").write_text("p { content: 'TOP-SECRET' }")
        monkeypatch.setattr(settings, "template_directory", str(root))
        return root

    @pytest.mark.parametrize("directory", ["/", "..", "emails/../.."])
    def test_directory_outside_root_is_rejected(self, client, template_root, directory):
        response = client.post("/v1/inline", json={"html": "<p>x</p>", "directory": directory})
        assert response.status_code == 422

    def test_relative_directory_inside_root(self, client, template_root):
        html = '<link rel="stylesheet" href="site.css"><p>x</p>'
        response = client.post("/v1/inline", json={"html": html, "directory": "emails"})

        assert response.status_code == 200
        assert response.json()["html"] == '<p style="color:green">x</p>'

    def test_link_escaping_root_is_not_found(self, client, template_root):
        html = '<link rel="stylesheet" href="../creds.css"><p>x</p>'
        response = client.post("/v1/inline", json={"html": html})

        assert response.status_code == 404
        assert "TOP-SECRET" not in response.text


class TestJobs:
    def test_inline_job_completes(self, client, payload):
        response = client.post("/v1/inline/jobs", json=payload)

        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert job_id.startswith("inline_")

        status = client.get(f"/v1/inline/jobs/{job_id}").json()
        assert status["status"] == "completed"
        assert status["template"] == "handlebars"
        assert status["result"]["html"] == '<div class="foo" style="color:red">{{name}}</div>'

    def test_critical_path_job_completes(self, client, payload):
        job_id = client.post("/v1/critical-path/jobs", json=payload).json()["job_id"]
        status = client.get(f"/v1/critical-path/jobs/{job_id}").json()

        assert status["status"] == "completed"
        assert status["mode"] == "critical_path"
        assert status["result"]["html"] == TEMPLATE

    def test_failed_job_reports_kind(self, client, fixtures_dir):
        html = '<link rel="stylesheet" href="missing.css">'
        job_id = client.post(
            "/v1/inline/jobs", json={"html": html, "directory": str(fixtures_dir)}
        ).json()["job_id"]
        status = client.get(f"/v1/inline/jobs/{job_id}").json()

        assert status["status"] == "failed"
        assert status["error_kind"] == "not_found"
        assert status["result"] is None

    def test_job_type_must_match_route(self, client, payload):
        job_id = client.post("/v1/inline/jobs", json=payload).json()["job_id"]
        assert client.get(f"/v1/critical-path/jobs/{job_id}").status_code == 404

    def test_unknown_job(self, client):
        assert client.get("/v1/inline/jobs/inline_missing").status_code == 404

    def test_unknown_template_is_rejected_before_enqueue(self, client, payload):
        response = client.post("/v1/inline/jobs", json={**payload, "template": "smarty"})
        assert response.status_code == 422
