# Gadget Guard
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the gadgetguard command line."""

import io
import json
from pathlib import Path

import pytest
import yaml

from gadgetguard.cli import EXIT_CONFIG, EXIT_DENIED, EXIT_OK, main


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
                "whitelist": "https://portal.example.com/app, https://api.example.com:8443",
                "allowed_host_names": ["localhost"],
            }
        )
    )
    return str(path)


class TestCheck:
    def test_all_allowed(self, config_file, capsys):
        code = main(["--config", config_file, "check", "https://portal.example.com/app/x"])
        assert code == EXIT_OK
        assert capsys.readouterr().out.startswith("ALLOWED")

    def test_one_denied(self, config_file, capsys):
        code = main(
            [
                "--config",
                config_file,
                "check",
                "https://api.example.com:8443/v1",
                "https://api.example.com:9443/v1",
            ]
        )
        out = capsys.readouterr().out.splitlines()
        assert code == EXIT_DENIED
        assert out[0].startswith("ALLOWED")
        assert out[1].startswith("DENIED")

    def test_denial_logged_to_stderr(self, config_file, capsys):
        main(["--config", config_file, "check", "http://attacker.net/?token=secret"])
        err = capsys.readouterr().err
        assert "Potential SSRF/DNS-exfiltration attempt" in err
        assert "secret" not in err


class TestScan:
    def test_scan_file_clean(self, config_file, tmp_path, capsys):
        target = tmp_path / "params.txt"
        target.write_text("callback=http://localhost:8080/cb&x=1")
        assert main(["--config", config_file, "scan", str(target)]) == EXIT_OK
        assert capsys.readouterr().out.strip() == "clean"

    def test_scan_stdin_violation(self, config_file, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("next=https://attacker.net/x"))
        assert main(["--config", config_file, "scan"]) == EXIT_DENIED
        assert capsys.readouterr().out.strip() == "disallowed URL: https://attacker.net"

    def test_scan_malformed_denied_by_default(self, config_file, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("u=http://localhost:abc/"))
        assert main(["--config", config_file, "scan"]) == EXIT_DENIED
        assert capsys.readouterr().out.strip() == "disallowed URL: http://localhost:abc"

    def test_scan_malformed_with_raise_policy(self, config_file, capsys, monkeypatch):
        path = Path(config_file)
        data = yaml.safe_load(path.read_text())
        data["malformed_policy"] = "raise"
        path.write_text(yaml.safe_dump(data))
        monkeypatch.setattr("sys.stdin", io.StringIO("u=http://localhost:abc/"))

        assert main(["--config", config_file, "scan"]) == EXIT_DENIED
        assert capsys.readouterr().out.strip() == "malformed URL: http://localhost:abc"


class TestRules:
    def test_prints_compiled_rules(self, config_file, capsys):
        assert main(["--config", config_file, "rules"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert [r["source"] for r in data["rules"]] == [
            "https://portal.example.com/app",
            "https://api.example.com:8443",
        ]
        assert data["hosts"] == ["api.example.com", "localhost", "portal.example.com"]

    def test_config_error(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"whitelist": ["portal.example.com"]}))
        assert main(["--config", str(path), "rules"]) == EXIT_CONFIG
        assert "Configuration error" in capsys.readouterr().err

    def test_empty_whitelist_without_hostname(self, tmp_path, capsys):
        path = tmp_path / "empty.yaml"
        path.write_text("whitelist: []\n")
        assert main(["--config", str(path), "rules"]) == EXIT_CONFIG

    def test_missing_command(self, config_file):
        with pytest.raises(SystemExit):
            main(["--config", config_file])
