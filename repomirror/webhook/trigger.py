"""
Resync Trigger — Bind listener payloads to mirror update cycles.
"""

from __future__ import annotations

import logging

from ..mirror.repository import RepositoryMirror
from .listener import TriggerListener

logger = logging.getLogger(__name__)


class ResyncTrigger:
    """Payload handler that runs a mirror's update cycle."""

    def __init__(self, mirror: RepositoryMirror):
        self.mirror = mirror

    def __call__(self, payload: bytes) -> str:
        outcome = self.mirror.trigger(payload)
        logger.debug(f"[webhook] Trigger for {self.mirror.name} finished: {outcome}")
        return outcome


def listener_for(mirror: RepositoryMirror) -> TriggerListener:
    """Create (but don't start) the listener that drives ``mirror``."""
    return TriggerListener(
        port=mirror.config.listen_port,
        handler=ResyncTrigger(mirror),
        host=mirror.config.listen_host,
    )
