"""
Repository Mirror — One local working copy kept equal to one remote.

Lifecycle:

    construction   clone if the path holds no repository, otherwise
                   fetch + hard-reset to FETCH_HEAD
    add_observer   register; a non-empty copy sends the full file list
    trigger        token check → fetch → diff → hard-reset → notify

## Failure windows

A cycle notifies observers only when fetch, diff and reset all succeeded.
If the reset fails after a successful fetch, FETCH_HEAD and the
remote-tracking refs have moved but HEAD and the working tree have not.
Callers reading the repository directly can see that divergence until the
next successful cycle; that cycle diffs from the unchanged HEAD, so the
skipped changes are still reported.

## Concurrency

At most one cycle runs per mirror. A trigger arriving while a cycle runs
queues exactly one rerun; more triggers during that time are dropped with
a log entry, since the rerun will fetch whatever they announced.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from ..models.config import MirrorConfig
from .credentials import CredentialProvider, redact_url
from .diff import FileDiff, classify_changes
from .engine import FETCH_HEAD, GitEngine, normalize_remote, repository_exists
from .errors import AuthorizationFailure, ConfigurationError, EngineOperationError
from .handle import OwnedHandle
from .observers import Observer, ObserverId, ObserverRegistry

logger = logging.getLogger(__name__)

# Trigger outcomes
OUTCOME_UNAUTHORIZED = "unauthorized"
OUTCOME_COALESCED = "coalesced"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_UPDATED = "updated"
OUTCOME_FAILED = "failed"


def check_token(payload: bytes, token: bytes) -> None:
    """
    Raise AuthorizationFailure unless ``token`` occurs somewhere in ``payload``.

    The match is an unanchored substring search: the token may sit anywhere
    in a request line, header or body.
    """
    if not token or token not in payload:
        raise AuthorizationFailure("trigger payload does not contain the shared token")


class RepositoryMirror:
    """
    Mirror of one remote repository in one local directory.

    Raises ConfigurationError if the local path is not a directory and
    EngineOperationError if the initial clone or sync fails.
    """

    def __init__(self, config: MirrorConfig):
        self.config = config
        self.name = config.name
        self.path = Path(config.local_path)

        if not self.path.is_dir():
            raise ConfigurationError(f"Mirror path is not a directory: {self.path}")

        self._provider: Optional[CredentialProvider] = None
        if config.credentials is not None:
            self._provider = CredentialProvider(config.credentials)

        self._observers = ObserverRegistry()
        # Serializes every engine call against the working copy
        self._repo_lock = threading.RLock()
        # Guards the single-flight flags below
        self._flight = threading.Lock()
        self._in_flight = False
        self._pending = False

        self._handle = self._establish()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _establish(self) -> OwnedHandle[GitEngine]:
        remote = redact_url(self.config.remote_url)

        if not repository_exists(self.path):
            logger.info(f"[mirror] No repository at {self.path}, cloning {remote}")
            engine = GitEngine.clone(
                self.config.remote_url,
                self.path,
                provider=self._provider,
                timeout=self.config.git_timeout,
            )
            logger.info(f"[mirror] Cloning of {remote} completed")
            return OwnedHandle(engine, GitEngine.close, kind="repository")

        logger.info(f"[mirror] Repository exists at {self.path}")
        handle = OwnedHandle(
            GitEngine.open(
                self.path,
                self.config.remote_url,
                provider=self._provider,
                timeout=self.config.git_timeout,
            ),
            GitEngine.close,
            kind="repository",
        )
        logger.info(f"[mirror] Checking {remote} for updates")
        try:
            engine = handle.get()
            self._align_origin(engine)
            engine.fetch()
            fetched = engine.find_ref(FETCH_HEAD)
            if fetched is not None:
                engine.reset_hard(fetched)
            elif engine.head_commit() is None:
                logger.info(f"[mirror] {remote} is still empty, nothing to reset")
            else:
                raise EngineOperationError("rev-parse", f"{FETCH_HEAD} cannot be resolved")
        except BaseException:
            handle.release()
            raise
        logger.info(f"[mirror] {self.path} is up to date")
        return handle

    def _align_origin(self, engine: GitEngine) -> None:
        """Fetch from the configured remote, whatever origin pointed at before."""
        wanted = normalize_remote(self.config.remote_url)
        current = engine.origin_url()
        if current == wanted:
            return
        logger.warning(
            f"[mirror] origin of {self.path} is {redact_url(current or '(missing)')}, "
            f"repointing it to {redact_url(wanted)}"
        )
        engine.set_origin_url(wanted)

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def __enter__(self) -> "RepositoryMirror":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def engine(self) -> GitEngine:
        return self._handle.get()

    @property
    def closed(self) -> bool:
        return self._handle.released

    def close(self) -> None:
        """Release the repository handle. Later triggers fail their cycle."""
        with self._repo_lock:
            self._handle.release()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_observer(self, observer: Observer) -> ObserverId:
        """
        Register an observer.

        If the working copy tracks at least one file, ``on_full_list`` is
        called with every tracked path before this returns.
        """
        with self._repo_lock:
            files = self.tracked_files()
            observer_id = self._observers.add(observer)
            if files:
                observer.on_full_list(self.path, files)
        return observer_id

    def remove_observer(self, observer_id: ObserverId) -> Observer:
        """Unregister an observer; it receives no further calls."""
        with self._repo_lock:
            return self._observers.remove(observer_id)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def tracked_files(self) -> List[str]:
        """Every path in the working copy's index, in index order."""
        with self._repo_lock:
            return self.engine.tracked_files()

    # ------------------------------------------------------------------
    # Update cycle
    # ------------------------------------------------------------------

    def trigger(self, payload: bytes) -> str:
        """
        Handle one inbound trigger payload.

        Returns one of the OUTCOME_* constants.
        """
        logger.info(f"[mirror] Webhook triggered for {self.path}", extra={"repo": self.name})
        try:
            check_token(payload, self.config.token_bytes())
        except AuthorizationFailure as e:
            logger.warning(f"[mirror] {e}", extra={"repo": self.name})
            return OUTCOME_UNAUTHORIZED

        with self._flight:
            if self._in_flight:
                if self._pending:
                    logger.info(
                        f"[mirror] Update already queued for {self.path}, dropping trigger",
                        extra={"repo": self.name},
                    )
                else:
                    logger.info(
                        f"[mirror] Update in progress for {self.path}, queueing one rerun",
                        extra={"repo": self.name},
                    )
                self._pending = True
                return OUTCOME_COALESCED
            self._in_flight = True

        finished = False
        try:
            outcome = self._run_cycle()
            while self._take_pending():
                outcome = self._run_cycle()
            finished = True
            return outcome
        finally:
            if not finished:
                with self._flight:
                    self._in_flight = False
                    self._pending = False

    def _take_pending(self) -> bool:
        """Consume a queued rerun, or leave the flight if there is none."""
        with self._flight:
            if self._pending:
                self._pending = False
                return True
            self._in_flight = False
            return False

    def _run_cycle(self) -> str:
        cycle_id = uuid4().hex[:8]
        extra = {"repo": self.name, "cycle_id": cycle_id}

        with self._repo_lock:
            try:
                engine = self.engine
                engine.fetch()
                fetched = engine.resolve_ref(FETCH_HEAD)
                diff = self._files_diff(engine, fetched)
                engine.reset_hard(fetched)
            except EngineOperationError as e:
                logger.error(f"[mirror] Exception occurred while updating {self.path}: {e}", extra=extra)
                return OUTCOME_FAILED
            except Exception:
                logger.exception(f"[mirror] Unexpected error while updating {self.path}", extra=extra)
                return OUTCOME_FAILED

            logger.info(
                f"[mirror] Finished updating {self.path} to {fetched[:12]}",
                extra=extra,
            )
            if diff.is_empty:
                return OUTCOME_UNCHANGED

            self._notify_diff(diff, extra)
            return OUTCOME_UPDATED

    def _files_diff(self, engine: GitEngine, fetched: str) -> FileDiff:
        """Diff HEAD (or the empty tree, if unborn) against the fetched commit."""
        head = engine.head_commit()
        old_tree = engine.peel_to_tree(head) if head else engine.empty_tree()
        new_tree = engine.peel_to_tree(fetched)
        return classify_changes(engine.diff_trees(old_tree, new_tree))

    def _notify_diff(self, diff: FileDiff, extra: dict) -> None:
        for observer_id, observer in self._observers.snapshot():
            if observer_id not in self._observers:
                continue
            try:
                observer.on_diff(self.path, diff)
            except Exception:
                logger.exception(
                    f"[mirror] Observer {observer_id} failed handling diff for {self.path}",
                    extra=extra,
                )
