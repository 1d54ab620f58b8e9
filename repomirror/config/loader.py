"""
Config Loader — Load mirror configuration from JSON or individual env vars.

Supports three sources, first match wins:
1. Master JSON key: REPOMIRROR_CONFIG env var with the whole config
2. Config file: --config / REPOMIRROR_CONFIG_FILE (default ./config.json)
3. Individual keys: REPOMIRROR_* env vars describing a single mirror

## Usage

    # Option 1: Master config
    export REPOMIRROR_CONFIG='{"repos": {"cards": {"remote": "https://...", ...}}}'

    # Option 3: Individual keys
    export REPOMIRROR_REMOTE_URL="https://github.com/org/cards.git"
    export REPOMIRROR_LOCAL_PATH="/srv/mirror/cards"
    export REPOMIRROR_LISTEN_PORT="62672"
    export REPOMIRROR_TOKEN="s3cret"

Mirror entries accept snake_case keys and the legacy keys ``remote``,
``path``, ``webhookPort`` and ``webhookToken``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..mirror.errors import ConfigurationError
from ..models.config import Credentials, MirrorConfig, ServiceConfig

logger = logging.getLogger(__name__)

CONFIG_ENV = "REPOMIRROR_CONFIG"
CONFIG_FILE_ENV = "REPOMIRROR_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.json"

# Field → accepted keys, current spelling first
_ALIASES = {
    "remote_url": ("remote_url", "remote", "remoteUrl"),
    "local_path": ("local_path", "path", "localPath"),
    "listen_port": ("listen_port", "webhookPort", "listenPort"),
    "listen_host": ("listen_host", "webhookHost", "listenHost"),
    "shared_token": ("shared_token", "webhookToken", "sharedToken"),
    "git_timeout": ("git_timeout", "gitTimeout"),
}


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    """First value present (and not None) under any of ``keys``."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def load_config(config_file: Optional[Path] = None) -> ServiceConfig:
    """
    Load configuration from the master env var, a JSON file or env vars.

    Raises:
        ConfigurationError: If the chosen source is malformed or invalid
    """
    master_config = os.environ.get(CONFIG_ENV)
    if master_config:
        try:
            data = json.loads(master_config)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid {CONFIG_ENV} JSON: {e}")
        logger.info(f"Loaded configuration from {CONFIG_ENV}")
        return parse_service_config(data)

    path = Path(config_file or os.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE)
    if path.is_file():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: line {e.lineno}: {e.msg}")
        logger.info(f"Loaded configuration from {path}")
        return parse_service_config(data)
    if config_file is not None:
        raise ConfigurationError(f"Config file not found: {path}")

    return _load_individual_vars()


def parse_service_config(data: Dict[str, Any]) -> ServiceConfig:
    """Parse a config document: ``{"repos": {...}}``, ``{"repos": [...]}`` or one mirror."""
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a JSON object")

    repos = data.get("repos")
    entries: List[Dict[str, Any]]
    if repos is None:
        entries = [data]
    elif isinstance(repos, dict):
        entries = [
            dict(entry, name=entry.get("name", name)) if isinstance(entry, dict) else entry
            for name, entry in repos.items()
        ]
    elif isinstance(repos, list):
        entries = list(repos)
    else:
        raise ConfigurationError("'repos' must be an object or a list")

    mirrors = [parse_mirror_config(entry) for entry in entries]

    try:
        return ServiceConfig(
            mirrors=mirrors,
            audit_ledger=_pick(data, "audit_ledger", "auditLedger"),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def parse_mirror_config(data: Dict[str, Any]) -> MirrorConfig:
    """Parse one mirror entry into a MirrorConfig."""
    if not isinstance(data, dict):
        raise ConfigurationError("Each mirror entry must be a JSON object")

    name = data.get("name") or "default"
    values: Dict[str, Any] = {"name": name}
    for field_name, keys in _ALIASES.items():
        value = _pick(data, *keys)
        if value is not None:
            values[field_name] = value

    try:
        creds = data.get("credentials")
        if creds:
            values["credentials"] = Credentials(
                username=creds.get("username"),
                password=creds.get("password"),
            )
        return MirrorConfig(**values)
    except (ValidationError, AttributeError) as e:
        raise ConfigurationError(f"Invalid configuration for mirror '{name}': {e}") from e


def _load_individual_vars() -> ServiceConfig:
    """Build a single-mirror config from REPOMIRROR_* env vars."""
    remote_url = os.environ.get("REPOMIRROR_REMOTE_URL")
    audit_ledger = os.environ.get("REPOMIRROR_AUDIT_LEDGER") or None
    if not remote_url:
        logger.warning("No mirror configured (REPOMIRROR_REMOTE_URL not set)")
        return ServiceConfig(mirrors=[], audit_ledger=audit_ledger)

    data: Dict[str, Any] = {
        "name": os.environ.get("REPOMIRROR_NAME") or "default",
        "remote_url": remote_url,
        "local_path": os.environ.get("REPOMIRROR_LOCAL_PATH"),
        "listen_port": os.environ.get("REPOMIRROR_LISTEN_PORT"),
        "listen_host": os.environ.get("REPOMIRROR_LISTEN_HOST") or None,
        "shared_token": os.environ.get("REPOMIRROR_TOKEN"),
        "git_timeout": os.environ.get("REPOMIRROR_GIT_TIMEOUT") or None,
    }
    username = os.environ.get("REPOMIRROR_USERNAME")
    password = os.environ.get("REPOMIRROR_PASSWORD")
    if username or password:
        data["credentials"] = {"username": username, "password": password}

    logger.info("Loaded configuration from REPOMIRROR_* environment variables")
    mirror = parse_mirror_config(data)
    return ServiceConfig(mirrors=[mirror], audit_ledger=audit_ledger)


def generate_config_template() -> str:
    """Generate a template for config.json / REPOMIRROR_CONFIG."""
    template = {
        "audit_ledger": "audit/changes.ndjson",
        "repos": {
            "cards": {
                "remote_url": "https://github.com/your-org/cards.git",
                "local_path": "/srv/mirror/cards",
                "listen_port": 62672,
                "shared_token": "change-me",
                "credentials": {
                    "username": "mirror-bot",
                    "password": "personal-access-token",
                },
            },
        },
    }
    return json.dumps(template, indent=2)
