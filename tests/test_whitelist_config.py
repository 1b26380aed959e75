# Gadget Guard
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for whitelist configuration loading and merging."""

import pytest
import yaml

from gadgetguard.whitelist.config import (
    ENV_ALLOWED_HOST_NAMES,
    ENV_HOSTNAME,
    ENV_PROXY_WHITELIST,
    WhitelistConfig,
    load_config,
    save_config,
)
from gadgetguard.whitelist.errors import ConfigurationError
from gadgetguard.whitelist.matcher import EmptyPolicy, MalformedPolicy


class TestWhitelistConfig:
    """Tests for WhitelistConfig defaults and merging."""

    def test_default_config_values(self):
        config = WhitelistConfig()
        assert config.platform_hostname == ""
        assert config.whitelist == []
        assert config.empty_policy is EmptyPolicy.PLATFORM_DEFAULT
        assert config.malformed_policy is MalformedPolicy.DENY
        assert config.default_path == "/portal"
        assert config.enforce is True

    def test_merged_entries_appends_overrides(self):
        config = WhitelistConfig(
            whitelist=["https://a.com/x"],
            override_whitelist=["https://b.com/y", "https://a.com/x"],
        )
        assert config.merged_entries() == ["https://a.com/x", "https://b.com/y"]

    def test_merged_host_names_platform_first(self):
        config = WhitelistConfig(
            platform_hostname="portal.example.com",
            allowed_host_names=["localhost", "portal.example.com"],
            override_host_names=["cdn.example.com"],
        )
        assert config.merged_host_names() == ["portal.example.com", "localhost", "cdn.example.com"]

    def test_compile(self):
        config = WhitelistConfig(
            platform_hostname="portal.example.com",
            whitelist=["https://api.example.com/v1"],
            allowed_host_names=["localhost"],
        )
        whitelist = config.compile()
        assert len(whitelist) == 1
        assert whitelist.hosts == frozenset({"api.example.com", "portal.example.com", "localhost"})

    def test_compile_empty_uses_platform_default(self):
        whitelist = WhitelistConfig(platform_hostname="portal.example.com").compile()
        assert whitelist.rules[0].synthesized is True

    def test_compile_malformed_entry(self):
        with pytest.raises(ConfigurationError):
            WhitelistConfig(whitelist=["portal.example.com"]).compile()


class TestLoadConfig:
    """Tests for loading and saving the YAML config."""

    def test_load_nonexistent_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "nonexistent.yaml", environ={})
        assert isinstance(config, WhitelistConfig)
        assert config.whitelist == []

    def test_load_full_file(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text(yaml.dump({
            "platform_hostname": "portal.example.com",
            "whitelist": ["https://portal.example.com/app", "https://api.example.com:8443"],
            "allowed_host_names": ["localhost"],
            "empty_policy": "deny_all",
            "malformed_policy": "raise",
            "max_body_size": 1024,
            "enforce": False,
        }))
        config = load_config(path, environ={})
        assert config.platform_hostname == "portal.example.com"
        assert config.whitelist == ["https://portal.example.com/app", "https://api.example.com:8443"]
        assert config.allowed_host_names == ["localhost"]
        assert config.empty_policy is EmptyPolicy.DENY_ALL
        assert config.malformed_policy is MalformedPolicy.RAISE
        assert config.max_body_size == 1024
        assert config.enforce is False

    def test_load_comma_separated_string(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text(yaml.dump({"whitelist": "https://a.com/x , https://b.com/y"}))
        config = load_config(path, environ={})
        assert config.whitelist == ["https://a.com/x", "https://b.com/y"]

    def test_empty_file_returns_defaults(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text("")
        config = load_config(path, environ={})
        assert config.whitelist == []

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text("not: valid: yaml: [[[")
        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text(yaml.dump(["just", "a", "list"]))
        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_invalid_policy_raises(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text(yaml.dump({"empty_policy": "sometimes"}))
        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_invalid_body_size_raises(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text(yaml.dump({"max_body_size": -1}))
        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_environment_overrides_appended(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        path.write_text(yaml.dump({
            "platform_hostname": "portal.example.com",
            "whitelist": ["https://a.com/x"],
            "allowed_host_names": ["localhost"],
        }))
        config = load_config(path, environ={
            ENV_PROXY_WHITELIST: "https://b.com/y, https://a.com/x",
            ENV_ALLOWED_HOST_NAMES: "cdn.example.com",
            ENV_HOSTNAME: "gadgets.example.com",
        })
        assert config.platform_hostname == "gadgets.example.com"
        assert config.merged_entries() == ["https://a.com/x", "https://b.com/y"]
        assert config.merged_host_names() == ["gadgets.example.com", "localhost", "cdn.example.com"]

    def test_save_and_load_roundtrip(self, tmp_path):
        config = WhitelistConfig(
            platform_hostname="portal.example.com",
            whitelist=["https://portal.example.com/app"],
            allowed_host_names=["localhost"],
            empty_policy=EmptyPolicy.ALLOW_ALL,
            enforce=False,
            audit_allowed=True,
        )
        path = tmp_path / "whitelist.yaml"
        save_config(config, path)

        loaded = load_config(path, environ={})
        assert loaded.platform_hostname == "portal.example.com"
        assert loaded.whitelist == ["https://portal.example.com/app"]
        assert loaded.allowed_host_names == ["localhost"]
        assert loaded.empty_policy is EmptyPolicy.ALLOW_ALL
        assert loaded.enforce is False
        assert loaded.audit_allowed is True

    def test_saved_file_is_valid_yaml(self, tmp_path):
        path = tmp_path / "whitelist.yaml"
        save_config(WhitelistConfig(whitelist=["https://a.com/x"]), path)
        data = yaml.safe_load(path.read_text())
        assert data["whitelist"] == ["https://a.com/x"]
        assert data["empty_policy"] == "platform_default"
