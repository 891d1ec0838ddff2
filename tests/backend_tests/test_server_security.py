"""
Production hardening tests.

Covers:
- GET /api/health returns 200 with expected JSON
- Security headers present on all responses, including errors
- Slow-request logging threshold
"""

import pytest
import server


@pytest.fixture(scope="module")
def client():
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c


def _assert_security_headers(resp):
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("Referrer-Policy") == "same-origin"


class TestHealthEndpoint:
    def test_health_returns_200(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200

    def test_health_response_body(self, client):
        data = client.get("/api/health").get_json()
        assert data["status"] == "ok"
        assert "version" in data
        assert data["data_loaded"] is True


class TestSecurityHeaders:
    def test_security_headers_on_health(self, client):
        _assert_security_headers(client.get("/api/health"))

    def test_security_headers_on_programs(self, client):
        _assert_security_headers(client.get("/api/programs"))

    def test_security_headers_on_csv_export(self, client):
        _assert_security_headers(client.get("/api/programs/hrt/export/users"))

    def test_security_headers_on_404(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        _assert_security_headers(resp)


class TestSlowRequestLog:
    def test_logs_when_over_threshold(self, client, monkeypatch, capsys):
        monkeypatch.setattr(server, "_SLOW_REQUEST_LOG_MS", 0.0)
        client.get("/api/health")
        out = capsys.readouterr().out
        assert "[SLOW] GET /api/health endpoint=health_endpoint status=200" in out

    def test_quiet_under_threshold(self, client, monkeypatch, capsys):
        monkeypatch.setattr(server, "_SLOW_REQUEST_LOG_MS", 60_000.0)
        client.get("/api/health")
        assert "[SLOW]" not in capsys.readouterr().out


class TestEnvFloat:
    def test_parses_and_clamps(self, monkeypatch):
        monkeypatch.setenv("SLOW_TEST_MS", "-5")
        assert server._env_float("SLOW_TEST_MS", 10.0) == 0.0
        monkeypatch.setenv("SLOW_TEST_MS", "12.5")
        assert server._env_float("SLOW_TEST_MS", 10.0) == 12.5

    def test_falls_back_on_garbage(self, monkeypatch):
        monkeypatch.setenv("SLOW_TEST_MS", "fast")
        assert server._env_float("SLOW_TEST_MS", 10.0) == 10.0
