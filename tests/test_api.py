# Gadget Guard
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the whitelist management API."""

import pytest
import yaml
from fastapi.testclient import TestClient

from gadgetguard.api import create_app, create_app_from_config
from gadgetguard.whitelist.audit import AuditLogger
from gadgetguard.whitelist.config import WhitelistConfig, load_config
from gadgetguard.whitelist.guard import WhitelistGuard


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "GADGETGUARD_PROXY_WHITELIST",
        "GADGETGUARD_ALLOWED_HOST_NAMES",
        "GADGETGUARD_HOSTNAME",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "whitelist.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "platform_hostname": "portal.example.com",
                "whitelist": ["https://portal.example.com/app", "https://api.example.com:8443"],
                "allowed_host_names": ["cdn.example.com"],
            }
        )
    )
    return path


@pytest.fixture
def audit(tmp_path):
    logger = AuditLogger(tmp_path / "audit.log")
    yield logger
    logger.close()


@pytest.fixture
def guard(config_file, audit):
    return WhitelistGuard.from_config(load_config(config_file), audit_logger=audit)


@pytest.fixture
def client(guard, config_file):
    return TestClient(create_app(guard, config_path=config_file))


class TestReadEndpoints:
    def test_get_whitelist(self, client):
        data = client.get("/api/whitelist").json()
        sources = [rule["source"] for rule in data["rules"]]
        assert sources == ["https://portal.example.com/app", "https://api.example.com:8443"]
        assert "cdn.example.com" in data["hosts"]
        assert "portal.example.com" in data["hosts"]
        assert data["allow_all"] is False
        assert data["empty_policy"] == "platform_default"

    def test_status(self, client):
        data = client.get("/api/whitelist/status").json()
        assert data["rule_count"] == 2
        assert data["generation"] == 1
        assert data["enforce"] is True
        assert data["audit_stats"]["total_events"] == 0

    def test_query_violation_rejected(self, client):
        resp = client.get("/api/whitelist/status", params={"next": "https://attacker.net"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Unauthorized query parameter detected!"


class TestCheckAndScan:
    def test_check_allowed(self, client):
        resp = client.post("/api/whitelist/check", json={"url": "https://portal.example.com/app/x"})
        assert resp.status_code == 200
        assert resp.json() == {"url": "https://portal.example.com/app/x", "allowed": True}

    def test_check_denied_is_not_filtered(self, client):
        resp = client.post("/api/whitelist/check", json={"url": "https://attacker.net/x"})
        assert resp.status_code == 200
        assert resp.json()["allowed"] is False

    def test_check_denial_audited(self, client, audit):
        client.post("/api/whitelist/check", json={"url": "http://169.254.169.254/latest"})
        stats = client.get("/api/whitelist/status").json()["audit_stats"]
        assert stats["blocked"] == 1
        assert stats["outbound"] == 1

    def test_scan_clean(self, client):
        resp = client.post("/api/whitelist/scan", json={"text": "see https://cdn.example.com/a.js"})
        assert resp.json() == {"disallowed": False, "offending_host": ""}

    def test_scan_disallowed(self, client):
        resp = client.post("/api/whitelist/scan", json={"text": "go to http://evil.example.org/x now"})
        assert resp.json() == {"disallowed": True, "offending_host": "evil.example.org"}

    def test_scan_malformed(self, client):
        resp = client.post("/api/whitelist/scan", json={"text": "http://cdn.example.com:99999999/"})
        assert resp.json() == {"disallowed": True, "offending_host": ""}

    def test_missing_field(self, client):
        assert client.post("/api/whitelist/check", json={}).status_code == 422


class TestReload:
    def test_reload_picks_up_changes(self, client, config_file):
        config_file.write_text(
            yaml.safe_dump(
                {
                    "platform_hostname": "portal.example.com",
                    "whitelist": ["https://partner.example.net"],
                }
            )
        )
        resp = client.post("/api/whitelist/reload")
        assert resp.status_code == 200
        assert resp.json() == {"status": "reloaded", "generation": 2, "rule_count": 1}

        check = client.post("/api/whitelist/check", json={"url": "https://partner.example.net/"})
        assert check.json()["allowed"] is True

    def test_failed_reload_keeps_old_set(self, client, guard, config_file):
        before = guard.current
        config_file.write_text(yaml.safe_dump({"whitelist": ["no-scheme-here"]}))

        resp = client.post("/api/whitelist/reload")

        assert resp.status_code == 400
        assert guard.current is before
        assert guard.generation == 1

    def test_invalid_yaml_keeps_old_set(self, client, guard, config_file):
        before = guard.current
        config_file.write_text("whitelist: [unclosed\n")
        assert client.post("/api/whitelist/reload").status_code == 400
        assert guard.current is before


def test_create_app_without_config_path(tmp_path, monkeypatch):
    monkeypatch.setattr("gadgetguard.whitelist.config.DEFAULT_CONFIG_PATH", tmp_path / "none.yaml")
    monkeypatch.setenv("GADGETGUARD_HOSTNAME", "portal.example.com")
    guard = WhitelistGuard.from_config(WhitelistConfig(platform_hostname="portal.example.com"))
    client = TestClient(create_app(guard))
    assert client.post("/api/whitelist/reload").json()["rule_count"] == 1


def test_create_app_from_config(tmp_path, config_file):
    data = yaml.safe_load(config_file.read_text())
    data["audit_log_path"] = str(tmp_path / "audit" / "guard.log")
    data["max_body_size"] = 32
    config_file.write_text(yaml.safe_dump(data))

    client = TestClient(create_app_from_config(config_file))

    assert client.post("/api/whitelist/reload", content=b"x" * 64).status_code == 413
    assert client.post("/api/whitelist/check", json={"url": "https://attacker.net"}).json()["allowed"] is False
    assert '"hostname":"attacker.net"' in (tmp_path / "audit" / "guard.log").read_text()
