"""
Observers — Collaborators told about the mirror's files.

Two hooks:

    on_full_list(path, files)   once, at registration, if the copy is non-empty
    on_diff(path, diff)         after every cycle whose diff is non-empty

The registry is an ordered arena of slots addressed by stable ids, so an
observer can be unregistered and is never called afterwards.
"""

from __future__ import annotations

import itertools
import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, List, NewType, Protocol, Tuple, runtime_checkable

from .diff import FileDiff

logger = logging.getLogger(__name__)

ObserverId = NewType("ObserverId", int)


@runtime_checkable
class Observer(Protocol):
    def on_full_list(self, path: Path, files: List[str]) -> None: ...

    def on_diff(self, path: Path, diff: FileDiff) -> None: ...


class RepositoryObserver:
    """Base class with no-op hooks; override the ones you need."""

    def on_full_list(self, path: Path, files: List[str]) -> None:
        pass

    def on_diff(self, path: Path, diff: FileDiff) -> None:
        pass


class ObserverRegistry:
    """Observers in registration order, addressed by ObserverId."""

    def __init__(self):
        self._slots: Dict[ObserverId, Observer] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add(self, observer: Observer) -> ObserverId:
        if not isinstance(observer, Observer):
            raise TypeError(
                f"{type(observer).__name__} does not implement on_full_list/on_diff"
            )
        with self._lock:
            observer_id = ObserverId(next(self._ids))
            self._slots[observer_id] = observer
        return observer_id

    def remove(self, observer_id: ObserverId) -> Observer:
        with self._lock:
            return self._slots.pop(observer_id)

    def get(self, observer_id: ObserverId) -> Observer:
        return self._slots[observer_id]

    def snapshot(self) -> List[Tuple[ObserverId, Observer]]:
        """Copy of the slots, so hooks may (un)register while we iterate."""
        with self._lock:
            return list(self._slots.items())

    def __iter__(self) -> Iterator[Observer]:
        return iter([obs for _, obs in self.snapshot()])

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, observer_id: object) -> bool:
        return observer_id in self._slots


class LoggingObserver(RepositoryObserver):
    """Writes every notification to the log."""

    def __init__(self, name: str = "mirror", max_paths: int = 20):
        self.name = name
        self.max_paths = max_paths

    def on_full_list(self, path: Path, files: List[str]) -> None:
        logger.info(f"[{self.name}] {len(files)} tracked file(s) in {path}")

    def on_diff(self, path: Path, diff: FileDiff) -> None:
        logger.info(
            f"[{self.name}] {path}: +{len(diff.added)} / -{len(diff.removed)}"
        )
        for p in sorted(diff.added)[: self.max_paths]:
            logger.debug(f"[{self.name}]   + {p}")
        for p in sorted(diff.removed)[: self.max_paths]:
            logger.debug(f"[{self.name}]   - {p}")
