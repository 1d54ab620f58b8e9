"""
Credential Provider — Plaintext username/password negotiation for git.

The remote URL decides which authentication kind the remote will ask for:

    https://host/repo.git      → USERPASS_PLAINTEXT   (served)
    ssh://host/repo.git        → SSH_KEY              (rejected)
    git@host:repo.git          → SSH_KEY              (rejected)
    git://host/repo.git        → NONE
    file:///srv/repo.git       → NONE
    /srv/repo.git              → NONE

Served credentials never touch disk or the repository's config. They are
handed to one git process through its environment and read back by an
inline credential helper passed with ``-c``.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from ..models.config import Credentials
from .errors import AuthenticationRejected

logger = logging.getLogger(__name__)

USERNAME_ENV = "REPOMIRROR_GIT_USERNAME"
PASSWORD_ENV = "REPOMIRROR_GIT_PASSWORD"

# git appends the action ("get", "store", "erase") to the helper command line
CREDENTIAL_HELPER = (
    "!f() { test \"$1\" = get || exit 0; "
    f"echo \"username=${{{USERNAME_ENV}}}\"; "
    f"echo \"password=${{{PASSWORD_ENV}}}\"; "
    "}; f"
)

_SCP_LIKE = re.compile(r"^(?:[^@/:]+@)?[^/:\\]+:")
_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


class CredentialKind(enum.Enum):
    """Authentication kinds a remote can request."""

    NONE = "none"
    USERPASS_PLAINTEXT = "userpass-plaintext"
    SSH_KEY = "ssh-key"


@dataclass
class GitAuth:
    """Extra git options and environment for one remote operation."""

    config_args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.config_args and not self.env


def requested_kind(url: str) -> CredentialKind:
    """Return the authentication kind a remote at ``url`` will request."""
    if "://" not in url:
        # scp-like "user@host:path"; a Windows drive is a local path
        if _SCP_LIKE.match(url) and not _WINDOWS_DRIVE.match(url):
            return CredentialKind.SSH_KEY
        return CredentialKind.NONE

    scheme = urlsplit(url).scheme.lower()
    if scheme in ("http", "https"):
        return CredentialKind.USERPASS_PLAINTEXT
    if scheme in ("ssh", "git+ssh", "ssh+git"):
        return CredentialKind.SSH_KEY
    return CredentialKind.NONE


class CredentialProvider:
    """
    Serves a fixed username/password pair to git, plaintext only.

    Any other requested kind raises AuthenticationRejected, which callers
    see as a failed clone or fetch.
    """

    def __init__(self, credentials: Credentials):
        self._credentials = credentials

    @property
    def username(self) -> str:
        return self._credentials.username

    def negotiate(self, url: str, operation: str = "fetch") -> GitAuth:
        kind = requested_kind(url)

        if kind is CredentialKind.NONE:
            return GitAuth()

        if kind is not CredentialKind.USERPASS_PLAINTEXT:
            logger.error(
                f"[mirror] Remote requested {kind.value} authentication; "
                "only plaintext username/password is supported"
            )
            raise AuthenticationRejected(
                operation,
                f"unsupported authentication kind '{kind.value}' for {redact_url(url)}",
            )

        logger.debug(f"[mirror] Serving plaintext credentials for {self.username}")
        return GitAuth(
            config_args=[
                # Reset inherited helpers so ours is the only one asked
                "-c", "credential.helper=",
                "-c", f"credential.helper={CREDENTIAL_HELPER}",
            ],
            env={
                USERNAME_ENV: self._credentials.username,
                PASSWORD_ENV: self._credentials.password.get_secret_value(),
            },
        )


def negotiate(provider: Optional[CredentialProvider], url: str, operation: str) -> GitAuth:
    """Negotiate only when credentials were configured."""
    if provider is None:
        return GitAuth()
    return provider.negotiate(url, operation)


def redact_url(url: str) -> str:
    """Strip any userinfo from a URL before it reaches a log line."""
    parts = urlsplit(url)
    if parts.password is None and parts.username is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return parts._replace(netloc=host).geturl()
