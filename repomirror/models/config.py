"""
Config Models — Pydantic schemas for mirror configuration.

One MirrorConfig per mirrored repository. All models are frozen: the
configuration can't change once a mirror has been built from it.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class Credentials(BaseModel):
    """Plaintext username/password pair for HTTP(S) remotes."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr


class MirrorConfig(BaseModel):
    """Configuration for a single mirrored repository."""

    model_config = ConfigDict(frozen=True)

    name: str = "default"
    remote_url: str = Field(min_length=1)
    local_path: Path
    listen_port: int = Field(ge=0, le=65535)
    listen_host: str = "0.0.0.0"
    # An empty token would be a substring of every payload
    shared_token: SecretStr
    credentials: Optional[Credentials] = None
    git_timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("shared_token")
    @classmethod
    def _token_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("shared_token must not be empty")
        return value

    def token_bytes(self) -> bytes:
        return self.shared_token.get_secret_value().encode("utf-8")


class ServiceConfig(BaseModel):
    """Everything the service needs to run: mirrors plus shared observers."""

    model_config = ConfigDict(frozen=True)

    mirrors: List[MirrorConfig] = Field(default_factory=list)
    audit_ledger: Optional[Path] = None
