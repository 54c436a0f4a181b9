"""
Tests for the container HTTP server.

The server module lives outside the package (it is the container entrypoint),
so it is loaded from its file path and served on an ephemeral port.
"""

import http.client
import importlib.util
import threading
import time
from http.server import HTTPServer
from pathlib import Path

import httpx
import pytest

SERVER_PATH = Path(__file__).resolve().parents[1] / "infrastructure" / "docker" / "server.py"


def _load_server_module():
    spec = importlib.util.spec_from_file_location("fixplan_container_server", SERVER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def container(monkeypatch):
    monkeypatch.setenv("FIXPLAN_REQUEST_TIMEOUT", "5")
    module = _load_server_module()
    server = HTTPServer(("127.0.0.1", 0), module.Handler)
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    with httpx.Client(base_url=f"http://127.0.0.1:{server.server_address[1]}", timeout=5) as client:
        yield client
    server.shutdown()
    server.server_close()


def _wait_until_done(client, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get("/status").json()
        if body["status"] != "running":
            return body
        time.sleep(0.05)
    raise AssertionError("analysis did not finish")


class TestEndpoints:
    def test_health(self, container):
        r = container.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    def test_idle_status(self, container):
        body = container.get("/status").json()
        assert body["status"] == "idle"
        assert "result" not in body

    def test_unknown_path(self, container):
        assert container.get("/nope").status_code == 404
        assert container.post("/nope").status_code == 404

    def test_cancel_when_idle(self, container):
        assert container.post("/cancel").status_code == 409

    def test_start_rejects_bad_body(self, container):
        r = container.post("/start", content=b"not json")
        assert r.status_code == 400
        r = container.post("/start", json={"url": "https://example.com", "crawl_limit": 0})
        assert r.status_code == 400

    def test_start_rejects_non_object_body(self, container):
        r = container.post("/start", json=["https://example.com"])
        assert r.status_code == 400
        assert r.json() == {"error": "request body must be a JSON object"}
        assert container.get("/status").json()["status"] == "idle"

    def test_start_rejects_bad_content_length(self, container):
        conn = http.client.HTTPConnection("127.0.0.1", container.base_url.port, timeout=5)
        try:
            conn.putrequest("POST", "/start")
            conn.putheader("Content-Length", "abc")
            conn.endheaders()
            response = conn.getresponse()
            assert response.status == 400
        finally:
            conn.close()
        assert container.get("/status").json()["status"] == "idle"


class TestRuns:
    def test_complete_run(self, container, site, page_builder):
        site.add("/", page_builder())
        site.add("/robots.txt", "User-agent: *\n", content_type="text/plain")

        r = container.post("/start", json={"url": site.url + "/", "job_id": "job-1"})
        assert r.status_code == 202
        assert r.json() == {"status": "started", "job_id": "job-1"}

        body = _wait_until_done(container)
        assert body["status"] == "complete"
        assert body["job_id"] == "job-1"
        assert body["error"] is None
        assert body["result"]["config"]["url"] == site.url + "/"
        assert 0 <= body["result"]["score"] <= 100
        assert [s["stage_id"] for s in body["stages"]][0] == "validate"

    def test_busy_then_cancelled(self, container, site, page_builder):
        site.add("/", page_builder(), delay=3.0)

        assert container.post("/start", json={"url": site.url + "/"}).status_code == 202
        assert container.post("/start", json={"url": site.url + "/"}).status_code == 409

        r = container.post("/cancel")
        assert r.status_code == 202
        assert r.json() == {"status": "cancelling"}

        body = _wait_until_done(container)
        assert body["status"] == "cancelled"
        assert body["error"] == "Analysis cancelled"
        assert "result" not in body

    def test_error_run(self, container, site):
        site.add("/", "down", status=503)
        assert container.post("/start", json={"url": site.url + "/"}).status_code == 202
        body = _wait_until_done(container)
        assert body["status"] == "error"
        assert body["error"] == "Failed to fetch URL: HTTP 503"
