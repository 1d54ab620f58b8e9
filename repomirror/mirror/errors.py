"""
Mirror Errors — Failure taxonomy for the repository mirror.

- ConfigurationError: fatal at startup, raised before any git call
- EngineOperationError: a git primitive failed (clone, fetch, reset, diff...)
- AuthenticationRejected: the remote asked for an auth kind we don't serve
- AuthorizationFailure: a trigger payload did not carry the shared token
"""

from __future__ import annotations

from typing import Optional


class MirrorError(Exception):
    """Base class for all mirror errors."""


class ConfigurationError(MirrorError):
    """The mirror configuration cannot be used (bad path, bad values)."""


class EngineOperationError(MirrorError):
    """A git primitive failed."""

    def __init__(
        self,
        operation: str,
        detail: str = "",
        returncode: Optional[int] = None,
    ):
        self.operation = operation
        self.detail = detail
        self.returncode = returncode
        message = f"git {operation} failed"
        if returncode is not None:
            message += f" (exit {returncode})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class AuthenticationRejected(EngineOperationError):
    """The remote requested an authentication kind other than plaintext."""


class AuthorizationFailure(MirrorError):
    """A trigger payload did not contain the shared token."""
