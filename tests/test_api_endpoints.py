# tests/test_api_endpoints.py
"""
End-to-end API scenarios through TestClient, with every upstream stubbed.
"""
import json
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from reviewpilot import config
from reviewpilot import app as app_module
from reviewpilot.app import app
from reviewpilot.sites import SiteRegistry
from reviewpilot.workflow import WorkflowCoordinator

from conftest import GEMINI_URL, gemini_reply

SITE = "https://shop.example.com"
STATUS_URL = SITE + config.PLUGIN_NAMESPACE + "/status"
DEPLOY_URL = SITE + config.PLUGIN_NAMESPACE + "/deploy"
CODE_TEXT = '```json\n{"code": ".btn{font-size:18px}", "code_type": "css", "description": "Larger button"}\n```'


@pytest.fixture
def client(fresh_db, monkeypatch):
    registry = SiteRegistry()
    monkeypatch.setattr(app_module, "registry", registry)
    monkeypatch.setattr(app_module, "coordinator", WorkflowCoordinator(registry=registry))
    return TestClient(app)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
def test_health_reports_key_presence(client, monkeypatch):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "hasKey": True}
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    assert client.get("/health").json()["hasKey"] is False


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------
def test_generate_prompt_end_to_end(client, upstream):
    upstream.add("POST", GEMINI_URL, json=gemini_reply("Increase button size"))
    r = client.post("/generate-prompt", json={"review": "button too small"})
    assert r.status_code == 200
    assert r.json() == {"prompt": "Increase button size"}
    assert len(upstream.calls) == 1


def test_generate_prompt_missing_review(client, upstream):
    r = client.post("/generate-prompt", json={})
    assert r.status_code == 400
    assert r.json()["error"] == "Review required"
    assert upstream.calls == []


def test_generate_prompt_upstream_failure(client, upstream):
    upstream.add("POST", GEMINI_URL, status=503, json={"error": "unavailable"})
    r = client.post("/generate-prompt", json={"review": "x"})
    assert r.status_code == 500
    body = r.json()
    assert body["error_code"] == "E_UPSTREAM"
    assert body["upstream_status"] == 503
    assert body["upstream_body"] == {"error": "unavailable"}


def test_generate_code_end_to_end(client, upstream):
    upstream.add("POST", GEMINI_URL, json=gemini_reply(CODE_TEXT))
    r = client.post("/generate-code", json={"prompt": "Increase button size"})
    assert r.status_code == 200
    assert r.json() == {"code": ".btn{font-size:18px}", "code_type": "css", "description": "Larger button"}


def test_generate_code_parse_failure_returns_raw(client, upstream):
    upstream.add("POST", GEMINI_URL, json=gemini_reply("no json here"))
    r = client.post("/generate-code", json={"prompt": "p"})
    assert r.status_code == 500
    assert r.json()["error_code"] == "E_PARSE"
    assert r.json()["raw"] == "no json here"


def test_malformed_body_is_400(client):
    r = client.post("/generate-code", content="not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["error_code"] == "E_VALIDATION"


# ---------------------------------------------------------------------------
# Sites
# ---------------------------------------------------------------------------
def test_setup_direct_unreachable_site(client, upstream):
    r = client.post("/setup/direct", json={"userId": "u1", "siteUrl": "https://down.example.com", "apiKey": "k"})
    assert r.status_code == 401
    body = r.json()
    assert isinstance(body["hints"], list) and body["hints"]


def test_setup_direct_success(client, upstream):
    upstream.add("GET", STATUS_URL, json={"status": "ok"})
    r = client.post("/setup/direct", json={"userId": "u1", "siteUrl": SITE + "/", "apiKey": "k", "siteName": "Shop"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert set(body["site"]) == {"id", "name", "siteUrl", "createdAt"}
    assert body["site"]["siteUrl"] == SITE
    assert body["site"]["name"] == "Shop"


def test_setup_direct_missing_fields(client, upstream):
    r = client.post("/setup/direct", json={"userId": "u1", "siteUrl": SITE})
    assert r.status_code == 400
    assert upstream.calls == []


def test_register_and_list_sites(client):
    r = client.post("/wordpress/register", json={"userId": "u1", "siteUrl": "https://a.com/", "apiKey": "secret"})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert "apiKey" not in r.json()["site"]
    client.post("/wordpress/register", json={"userId": "u1", "siteUrl": "https://a.com", "apiKey": "secret-2"})
    client.post("/wordpress/register", json={"userId": "u1", "siteUrl": "https://b.com", "apiKey": "k"})

    r = client.get("/wordpress/sites/u1")
    assert r.status_code == 200
    sites = r.json()["sites"]
    assert [s["siteUrl"] for s in sites] == ["https://a.com", "https://b.com"]
    assert "secret" not in json.dumps(sites)


def test_register_bad_url(client):
    r = client.post("/wordpress/register", json={"userId": "u1", "siteUrl": "a.com", "apiKey": "k"})
    assert r.status_code == 400


# ---------------------------------------------------------------------------
# Deployment
# ---------------------------------------------------------------------------
def test_deploy_code_rejects_unknown_type_without_upstream(client, upstream):
    r = client.post("/deploy-code", json={"siteUrl": SITE, "apiKey": "k", "code": "<a/>", "codeType": "xml"})
    assert r.status_code == 400
    assert upstream.calls == []


def test_deploy_code_success(client, upstream):
    upstream.add("POST", DEPLOY_URL, json={"success": True, "id": 9})
    r = client.post("/deploy-code", json={"siteUrl": SITE, "apiKey": "k", "code": ".a{}", "codeType": "css"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "deployment": {"success": True, "id": 9}}


def test_deploy_code_upstream_failure(client, upstream):
    upstream.add("POST", DEPLOY_URL, status=401, json={"message": "bad key"})
    r = client.post("/deploy-code", json={"siteUrl": SITE, "apiKey": "k", "code": ".a{}", "codeType": "css"})
    assert r.status_code == 500
    assert r.json()["error_code"] == "E_DEPLOY"
    assert r.json()["upstream_body"] == {"message": "bad key"}


def test_deploy_codes_batch(client, upstream):
    upstream.add("POST", SITE + config.PLUGIN_NAMESPACE + "/deploy-batch", json={"deployed": 2})
    r = client.post("/deploy-codes", json={"siteUrl": SITE, "apiKey": "k", "deployments": [
        {"code": ".a{}", "codeType": "css"}, {"code": "f()", "codeType": "js"},
    ]})
    assert r.status_code == 200
    assert r.json()["deployment"] == {"deployed": 2}


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------
def test_authorize_url_endpoint(client):
    r = client.get("/oauth/authorize-url")
    assert r.status_code == 200
    body = r.json()
    assert parse_qs(urlparse(body["authorizeUrl"]).query)["state"] == [body["state"]]


def test_auth_callback_redirects_with_code(client):
    r = client.get("/auth/callback", params={"code": "abc", "state": "xyz"}, follow_redirects=False)
    assert r.status_code == 302
    loc = urlparse(r.headers["location"])
    assert parse_qs(loc.query) == {"code": ["abc"], "state": ["xyz"]}


def test_auth_callback_without_code(client):
    r = client.get("/auth/callback", follow_redirects=False)
    assert r.status_code == 302
    assert parse_qs(urlparse(r.headers["location"]).query) == {"error": ["no_code"]}


def test_oauth_token_missing_code(client, upstream):
    r = client.post("/oauth/token", json={})
    assert r.status_code == 400
    assert upstream.calls == []


def test_oauth_token_exchange(client, upstream, monkeypatch):
    monkeypatch.setattr(config, "WORDPRESS_TOKEN_URL", "https://wp.example/oauth2/token")
    upstream.add("POST", "https://wp.example/oauth2/token", json={"access_token": "a", "refresh_token": "r"})
    r = client.post("/oauth/token", json={"code": "c"})
    assert r.status_code == 200
    assert r.json() == {"access_token": "a", "refresh_token": "r"}


def test_list_wordpress_sites_requires_token(client, upstream):
    r = client.get("/list-wordpress-sites")
    assert r.status_code == 400
    assert upstream.calls == []


def test_list_wordpress_sites_upstream_failure(client, upstream):
    r = client.get("/list-wordpress-sites", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 500


# ---------------------------------------------------------------------------
# Reviews / workflow
# ---------------------------------------------------------------------------
def test_review_workflow_over_http(client, upstream):
    r = client.post("/reviews", json={"text": "button too small"})
    assert r.status_code == 201
    rid = r.json()["review"]["id"]

    assert client.post(f"/reviews/{rid}/start").json()["review"]["id"] == rid

    upstream.add("POST", GEMINI_URL, json=gemini_reply("Increase button size"))
    r = client.post(f"/reviews/{rid}/generate-prompt")
    assert r.json()["prompt"] == "Increase button size"

    r = client.put(f"/reviews/{rid}/prompt-draft", json={"promptDraft": "Make buttons 48px tall"})
    assert r.json()["review"]["promptDraft"] == "Make buttons 48px tall"

    upstream.add("POST", GEMINI_URL, json=gemini_reply(CODE_TEXT))
    r = client.post(f"/reviews/{rid}/generate-code")
    assert r.status_code == 200
    assert r.json()["code_type"] == "css"
    assert "Make buttons 48px tall" in json.loads(upstream.calls[-1].content)["contents"][0]["parts"][0]["text"]

    selected = client.get("/workflow/selected").json()["review"]
    assert selected["status"] == "codeGenerated"

    upstream.add("POST", DEPLOY_URL, json={"success": True})
    r = client.post(f"/reviews/{rid}/deploy", json={"siteUrl": SITE, "apiKey": "k"})
    assert r.status_code == 200
    assert r.json()["review"]["status"] == "deployed"

    deployments = client.get("/deployments").json()["deployments"]
    assert len(deployments) == 1
    assert deployments[0]["siteUrl"] == SITE
    assert deployments[0]["reviewId"] == rid


def test_review_not_found(client):
    assert client.get("/reviews/12345").status_code == 404
    assert client.delete("/reviews/12345").status_code == 404


def test_delete_review(client):
    rid = client.post("/reviews", json={"text": "x"}).json()["review"]["id"]
    assert client.delete(f"/reviews/{rid}").json() == {"success": True}
    assert client.get("/reviews").json() == {"reviews": []}


def test_review_to_deploy_pipeline(client, upstream):
    upstream.add("POST", GEMINI_URL, json=gemini_reply(CODE_TEXT))
    upstream.add("POST", DEPLOY_URL, json={"success": True})
    r = client.post("/review-to-deploy", json={
        "review": "button too small", "siteUrl": SITE, "apiKey": "k", "userId": "u1",
    })
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["pipeline"]["codeType"] == "css"
    assert body["pipeline"]["deployment"]["userId"] == "u1"
    # prompt call, code call, deploy call
    assert len(upstream.calls) == 3


def test_review_to_deploy_missing_fields(client, upstream):
    r = client.post("/review-to-deploy", json={"review": "x", "siteUrl": SITE})
    assert r.status_code == 400
    assert upstream.calls == []


# ---------------------------------------------------------------------------
# Site removal, selection and dashboard
# ---------------------------------------------------------------------------
def test_remove_site_over_http(client):
    client.post("/wordpress/register", json={"userId": "u1", "siteUrl": "https://a.com", "apiKey": "k"})
    client.post("/wordpress/register", json={"userId": "u1", "siteUrl": "https://b.com", "apiKey": "k"})

    r = client.delete("/wordpress/sites/u1", params={"siteUrl": "https://a.com/"})
    assert r.status_code == 200
    assert r.json()["site"]["siteUrl"] == "https://a.com"
    assert "apiKey" not in r.json()["site"]
    assert [s["siteUrl"] for s in client.get("/wordpress/sites/u1").json()["sites"]] == ["https://b.com"]

    assert client.delete("/wordpress/sites/u1", params={"siteUrl": "https://a.com"}).status_code == 404
    assert client.delete("/wordpress/sites/u1").status_code == 400


def test_setup_direct_non_ascii_key_is_rejected_without_call(client, upstream):
    r = client.post("/setup/direct", json={"userId": "u1", "siteUrl": SITE, "apiKey": "clé"})
    assert r.status_code == 400
    assert upstream.calls == []
    r = client.post("/deploy-code", json={"siteUrl": SITE, "apiKey": "clé", "code": "a", "codeType": "css"})
    assert r.status_code == 400
    assert upstream.calls == []


def test_clear_selected_review(client):
    rid = client.post("/reviews", json={"text": "x"}).json()["review"]["id"]
    client.post(f"/reviews/{rid}/start")
    assert client.get("/workflow/selected").json()["review"]["id"] == rid

    r = client.delete("/workflow/selected")
    assert r.status_code == 200
    assert r.json() == {"review": None}
    assert client.get("/workflow/selected").json() == {"review": None}
    assert client.get(f"/reviews/{rid}").status_code == 200


def test_dashboard_summary(client, upstream):
    r = client.get("/dashboard/summary")
    assert r.json() == {"total": 0, "pending": 0, "codeGenerated": 0, "deployments": 0}

    rid = client.post("/reviews", json={"text": "button too small"}).json()["review"]["id"]
    client.post("/reviews", json={"text": "another"})
    upstream.add("POST", GEMINI_URL, json=gemini_reply(CODE_TEXT))
    client.post(f"/reviews/{rid}/generate-code", json={"prompt": "Make buttons bigger"})

    r = client.get("/dashboard/summary")
    assert r.status_code == 200
    assert r.json() == {"total": 2, "pending": 2, "codeGenerated": 1, "deployments": 0}
