"""
Mirror Service — Run every configured mirror on one event loop.

For each mirror: establish the working copy, attach the configured
observers, start a trigger listener bound to the mirror's port. Runs until
SIGINT/SIGTERM (or ``request_stop``), then stops accepting, lets in-flight
cycles finish and releases every repository handle.

    service = MirrorService(load_config())
    asyncio.run(service.run())
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable, Iterable, List, Optional

from .mirror.observers import LoggingObserver, Observer
from .mirror.repository import RepositoryMirror
from .models.config import MirrorConfig, ServiceConfig
from .persistence.audit import ChangeLedger, LedgerObserver
from .webhook.listener import TriggerListener
from .webhook.trigger import listener_for

logger = logging.getLogger(__name__)

# Builds the extra observers for one mirror
ObserverFactory = Callable[[RepositoryMirror], Iterable[Observer]]


class MirrorService:
    """Owns the mirrors and listeners built from one ServiceConfig."""

    def __init__(
        self,
        config: ServiceConfig,
        observer_factory: Optional[ObserverFactory] = None,
    ):
        self.config = config
        self.observer_factory = observer_factory
        self.mirrors: List[RepositoryMirror] = []
        self.listeners: List[TriggerListener] = []
        self.ledger: Optional[ChangeLedger] = None
        if config.audit_ledger is not None:
            self.ledger = ChangeLedger(config.audit_ledger)
        self._stop_event: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Mirrors
    # ------------------------------------------------------------------

    def build_mirrors(self) -> List[RepositoryMirror]:
        """
        Establish every mirror and attach its observers.

        Any failure is fatal: mirrors built so far are closed and the
        error propagates.
        """
        try:
            for mirror_config in self.config.mirrors:
                mirror = self._build_mirror(mirror_config)
                self.mirrors.append(mirror)
        except BaseException:
            self.close()
            raise
        return self.mirrors

    def _build_mirror(self, mirror_config: MirrorConfig) -> RepositoryMirror:
        logger.info(f"[service] Setting up mirror '{mirror_config.name}'")
        mirror = RepositoryMirror(mirror_config)
        try:
            mirror.add_observer(LoggingObserver(mirror_config.name))
            if self.ledger is not None:
                mirror.add_observer(LedgerObserver(self.ledger, mirror_config.name))
            if self.observer_factory is not None:
                for observer in self.observer_factory(mirror):
                    mirror.add_observer(observer)
        except BaseException:
            mirror.close()
            raise
        return mirror

    def close(self) -> None:
        """Release every repository handle."""
        for mirror in self.mirrors:
            mirror.close()
        self.mirrors = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    async def start_listeners(self) -> List[TriggerListener]:
        for mirror in self.mirrors:
            listener = listener_for(mirror)
            await listener.start()
            self.listeners.append(listener)
        return self.listeners

    async def stop_listeners(self) -> None:
        for listener in self.listeners:
            listener.stop()
        for listener in self.listeners:
            await listener.wait_idle()

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> None:
        """Build, serve until stopped, then tear everything down."""
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        # Initial clones/fetches can take a while; keep the loop responsive
        await asyncio.to_thread(self.build_mirrors)
        try:
            await self.start_listeners()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, self.request_stop)
                except (NotImplementedError, RuntimeError):
                    pass
            logger.info(f"[service] Serving {len(self.mirrors)} mirror(s)")
            await self._stop_event.wait()
            logger.info("[service] Shutting down...")
        finally:
            await self.stop_listeners()
            self.close()
            logger.info("[service] Goodbye")
