"""
Tests for repomirror/config/loader.py

Source precedence: REPOMIRROR_CONFIG, then a JSON file, then individual
REPOMIRROR_* variables.
"""

import json
import os
from pathlib import Path

import pytest

from repomirror.config.loader import (
    CONFIG_ENV,
    generate_config_template,
    load_config,
    parse_mirror_config,
    parse_service_config,
)
from repomirror.mirror.errors import ConfigurationError

ENTRY = {
    "remote_url": "https://github.com/org/cards.git",
    "local_path": "/srv/mirror/cards",
    "listen_port": 62672,
    "shared_token": "s3cret",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No REPOMIRROR_* leakage and no stray ./config.json."""
    for key in list(os.environ):
        if key.startswith("REPOMIRROR_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestParseMirrorConfig:

    def test_snake_case(self):
        config = parse_mirror_config(dict(ENTRY, name="cards"))
        assert config.name == "cards"
        assert config.remote_url == ENTRY["remote_url"]
        assert config.local_path == Path("/srv/mirror/cards")
        assert config.listen_port == 62672
        assert config.token_bytes() == b"s3cret"
        assert config.credentials is None
        assert config.listen_host == "0.0.0.0"

    def test_legacy_keys(self):
        config = parse_mirror_config({
            "remote": "https://github.com/org/cards.git",
            "path": "/srv/mirror/cards",
            "webhookPort": 62672,
            "webhookToken": "s3cret",
        })
        assert config.name == "default"
        assert config.listen_port == 62672
        assert config.shared_token.get_secret_value() == "s3cret"

    def test_credentials(self):
        config = parse_mirror_config(dict(
            ENTRY, credentials={"username": "bot", "password": "hunter2-secret"},
        ))
        assert config.credentials.username == "bot"
        assert config.credentials.password.get_secret_value() == "hunter2-secret"
        assert "hunter2-secret" not in repr(config)

    def test_empty_token_rejected(self):
        with pytest.raises(ConfigurationError, match="shared_token"):
            parse_mirror_config(dict(ENTRY, shared_token=""))

    def test_port_out_of_range(self):
        with pytest.raises(ConfigurationError):
            parse_mirror_config(dict(ENTRY, listen_port=70000))

    def test_missing_remote(self):
        entry = dict(ENTRY)
        del entry["remote_url"]
        with pytest.raises(ConfigurationError):
            parse_mirror_config(entry)

    def test_non_object(self):
        with pytest.raises(ConfigurationError):
            parse_mirror_config(["not", "a", "dict"])

    def test_bad_credentials(self):
        with pytest.raises(ConfigurationError):
            parse_mirror_config(dict(ENTRY, credentials="bot:pat"))


class TestParseServiceConfig:

    def test_repos_mapping_names_entries(self):
        service = parse_service_config({"repos": {"cards": ENTRY}})
        assert [m.name for m in service.mirrors] == ["cards"]

    def test_repos_list(self):
        service = parse_service_config({"repos": [dict(ENTRY, name="a"), dict(ENTRY, name="b")]})
        assert [m.name for m in service.mirrors] == ["a", "b"]

    def test_single_mirror_document(self):
        service = parse_service_config(ENTRY)
        assert len(service.mirrors) == 1

    def test_audit_ledger(self):
        service = parse_service_config({"repos": [], "audit_ledger": "audit/changes.ndjson"})
        assert service.audit_ledger == Path("audit/changes.ndjson")

    def test_bad_repos_type(self):
        with pytest.raises(ConfigurationError):
            parse_service_config({"repos": "cards"})

    def test_not_an_object(self):
        with pytest.raises(ConfigurationError):
            parse_service_config([ENTRY])


class TestLoadConfig:

    def test_master_env_wins(self, monkeypatch, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps({"repos": {"file": ENTRY}}))
        monkeypatch.setenv(CONFIG_ENV, json.dumps({"repos": {"env": ENTRY}}))
        monkeypatch.setenv("REPOMIRROR_REMOTE_URL", "https://example.com/vars.git")

        assert [m.name for m in load_config().mirrors] == ["env"]

    def test_master_env_invalid_json(self, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV, "{not json")
        with pytest.raises(ConfigurationError, match=CONFIG_ENV):
            load_config()

    def test_default_file(self, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps({"repos": {"file": ENTRY}}))
        assert [m.name for m in load_config().mirrors] == ["file"]

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "mirrors.json"
        path.write_text(json.dumps({"repos": {"explicit": ENTRY}}))
        assert [m.name for m in load_config(path).mirrors] == ["explicit"]

    def test_file_from_env(self, monkeypatch, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps(dict(ENTRY, name="other")))
        monkeypatch.setenv("REPOMIRROR_CONFIG_FILE", str(path))
        assert [m.name for m in load_config().mirrors] == ["other"]

    def test_explicit_file_missing(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.json")

    def test_invalid_file(self, tmp_path):
        (tmp_path / "config.json").write_text("{\n  oops\n}")
        with pytest.raises(ConfigurationError, match="line 2"):
            load_config()

    def test_individual_vars(self, monkeypatch):
        monkeypatch.setenv("REPOMIRROR_REMOTE_URL", "https://github.com/org/cards.git")
        monkeypatch.setenv("REPOMIRROR_LOCAL_PATH", "/srv/mirror/cards")
        monkeypatch.setenv("REPOMIRROR_LISTEN_PORT", "62672")
        monkeypatch.setenv("REPOMIRROR_TOKEN", "s3cret")
        monkeypatch.setenv("REPOMIRROR_USERNAME", "bot")
        monkeypatch.setenv("REPOMIRROR_PASSWORD", "pat")
        monkeypatch.setenv("REPOMIRROR_GIT_TIMEOUT", "30")

        (mirror,) = load_config().mirrors
        assert mirror.name == "default"
        assert mirror.listen_port == 62672
        assert mirror.git_timeout == 30.0
        assert mirror.credentials.username == "bot"

    def test_individual_vars_incomplete(self, monkeypatch):
        monkeypatch.setenv("REPOMIRROR_REMOTE_URL", "https://github.com/org/cards.git")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_nothing_configured(self):
        assert load_config().mirrors == []


class TestTemplate:

    def test_template_parses(self):
        service = parse_service_config(json.loads(generate_config_template()))
        assert [m.name for m in service.mirrors] == ["cards"]
        assert service.mirrors[0].credentials is not None
