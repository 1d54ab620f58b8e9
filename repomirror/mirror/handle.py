"""
Owned Handles — One release rule per resource kind.

An ``OwnedHandle`` wraps a resource together with the function that releases
it. Release is idempotent, and the resource can't be reached afterwards.

    handle = OwnedHandle(engine, release=GitEngine.close, kind="repository")
    with handle:
        handle.get().fetch()
    # engine.close() has run here
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Optional, TypeVar

from .errors import EngineOperationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OwnedHandle(Generic[T]):
    """Exclusive ownership of a resource plus its release policy."""

    def __init__(self, resource: T, release: Callable[[T], None], kind: str = "resource"):
        self._resource: Optional[T] = resource
        self._release = release
        self.kind = kind
        self._lock = threading.Lock()

    def __enter__(self) -> "OwnedHandle[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    @property
    def released(self) -> bool:
        return self._resource is None

    def get(self) -> T:
        """Return the owned resource, or raise if it was already released."""
        resource = self._resource
        if resource is None:
            raise EngineOperationError("open", f"{self.kind} handle was released")
        return resource

    def release(self) -> None:
        """Run the release policy once. Later calls do nothing."""
        with self._lock:
            resource, self._resource = self._resource, None
        if resource is None:
            return
        logger.debug(f"Releasing {self.kind} handle")
        self._release(resource)
