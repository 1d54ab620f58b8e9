"""
Configuration Validator — Check mirror configuration before starting.

Reports, per mirror, what startup will do (clone or sync) and anything
that would make it fail.

## Usage

    from repomirror.config.validator import validate_all

    for name, status in validate_all(service_config).items():
        if not status.configured:
            print(f"{name}: {status.problems}")
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List

from ..mirror.credentials import CredentialKind, requested_kind
from ..mirror.engine import repository_exists
from ..mirror.errors import EngineOperationError
from ..models.config import MirrorConfig, ServiceConfig

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 16

MODE_CLONE = "clone"
MODE_SYNC = "sync"
MODE_INVALID = "invalid"


@dataclass
class ConfigStatus:
    """Status of one mirror's configuration."""

    mirror: str
    configured: bool
    mode: str = MODE_INVALID
    problems: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert to dictionary for logging."""
        return {
            "mirror": self.mirror,
            "configured": self.configured,
            "mode": self.mode,
            "problems": self.problems,
            "notes": self.notes,
        }


def validate_mirror_config(config: MirrorConfig) -> ConfigStatus:
    """Check one mirror. Never touches the network."""
    problems: List[str] = []
    notes: List[str] = []
    mode = MODE_INVALID

    path = config.local_path
    if not path.exists():
        problems.append(f"local_path does not exist: {path}")
    elif not path.is_dir():
        problems.append(f"local_path is not a directory: {path}")
    else:
        try:
            if repository_exists(path):
                mode = MODE_SYNC
            elif any(path.iterdir()):
                problems.append(f"local_path is not empty and holds no repository: {path}")
            else:
                mode = MODE_CLONE
        except EngineOperationError as e:
            problems.append(str(e))

    kind = requested_kind(config.remote_url)
    if config.credentials is not None:
        if kind is CredentialKind.SSH_KEY:
            problems.append(
                "credentials are plaintext only, but the remote uses SSH key authentication"
            )
        elif kind is CredentialKind.NONE:
            notes.append("credentials are configured but the remote requests no authentication")

    if len(config.shared_token.get_secret_value()) < MIN_TOKEN_LENGTH:
        notes.append(
            f"shared_token is shorter than {MIN_TOKEN_LENGTH} characters; "
            "any payload containing it is accepted"
        )

    if config.listen_port == 0:
        notes.append("listen_port is 0; an ephemeral port will be chosen")

    if problems:
        mode = MODE_INVALID

    return ConfigStatus(
        mirror=config.name,
        configured=not problems,
        mode=mode,
        problems=problems,
        notes=notes,
    )


def validate_all(service: ServiceConfig) -> Dict[str, ConfigStatus]:
    """Check every mirror plus the settings they share."""
    results = {m.name: validate_mirror_config(m) for m in service.mirrors}

    names = Counter(m.name for m in service.mirrors)
    ports = Counter(m.listen_port for m in service.mirrors if m.listen_port)
    paths = Counter(m.local_path.resolve() for m in service.mirrors)

    for mirror in service.mirrors:
        status = results[mirror.name]
        if names[mirror.name] > 1:
            status.problems.append(f"mirror name '{mirror.name}' is used more than once")
        if mirror.listen_port and ports[mirror.listen_port] > 1:
            status.problems.append(f"listen_port {mirror.listen_port} is shared with another mirror")
        if paths[mirror.local_path.resolve()] > 1:
            status.problems.append(f"local_path {mirror.local_path} is shared with another mirror")
        if status.problems:
            status.configured = False
            status.mode = MODE_INVALID

    return results
