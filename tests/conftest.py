# tests/conftest.py
"""
Shared fixtures: a stubbed upstream for every outbound HTTP call and a
disposable SQLite database per test.
"""
import os
import tempfile

# Configure before any reviewpilot import (modules read env at import time)
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.gettempdir(), "review_pilot_test.db"))
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("MOCK_GEMINI", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest

from reviewpilot import db as dbmod
from reviewpilot import llm_client
from reviewpilot import transport


class Upstream:
    """
    Routes outbound requests by (METHOD, url without query) to canned responses.
    Unrouted requests fail like an unreachable host.
    """

    def __init__(self):
        self.calls = []
        self.routes = {}

    def add(self, method, url, status=200, json=None, text=None, exc=None):
        self.routes[(method.upper(), url)] = {"status": status, "json": json, "text": text, "exc": exc}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, str(request.url).split("?")[0])
        route = self.routes.get(key)
        if route is None:
            raise httpx.ConnectError("unreachable", request=request)
        if route["exc"] is not None:
            raise route["exc"]
        if route["json"] is not None:
            return httpx.Response(route["status"], json=route["json"])
        return httpx.Response(route["status"], text=route["text"] or "")


@pytest.fixture
def upstream(monkeypatch):
    up = Upstream()
    monkeypatch.setattr(transport, "TRANSPORT", httpx.MockTransport(up.handler))
    return up


@pytest.fixture
def fresh_db(tmp_path):
    dbmod.reconfigure(f"sqlite:///{tmp_path / 'test.db'}")
    dbmod.init_db()
    yield
    dbmod.engine.dispose()


GEMINI_URL = llm_client._endpoint()


def gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}], "responseId": "resp-1"}
