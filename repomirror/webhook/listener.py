"""
Trigger Listener — One-shot payload acceptor on a fixed port.

Per connection:

    1. read once, up to MAX_PAYLOAD bytes (no framing, no headers)
    2. write the fixed acknowledgment
    3. hand the raw bytes to the handler

The acknowledgment goes out before the handler runs, so the sender sees the
request as complete before any synchronization starts.

States: IDLE → LISTENING → STOPPED. A stopped listener can't be restarted.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Set, Union

logger = logging.getLogger(__name__)

MAX_PAYLOAD = 255
ACKNOWLEDGMENT = b"HTTP/1.0 200 OK\r\n"

PayloadHandler = Callable[[bytes], Union[Any, Awaitable[Any]]]


class ListenerState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    STOPPED = "stopped"


class ListenerStateError(RuntimeError):
    """start() or stop() called in a state that doesn't allow it."""


class TriggerListener:
    """
    asyncio acceptor feeding one bounded payload per connection to a handler.

    Sync handlers run in the default executor so a slow handler never
    blocks the accept loop; coroutine handlers are awaited in place.
    """

    def __init__(
        self,
        port: int,
        handler: PayloadHandler,
        host: str = "0.0.0.0",
        max_payload: int = MAX_PAYLOAD,
        acknowledgment: bytes = ACKNOWLEDGMENT,
    ):
        self.host = host
        self.requested_port = port
        self.handler = handler
        self.max_payload = max_payload
        self.acknowledgment = acknowledgment
        self.state = ListenerState.IDLE
        self._server: Optional[asyncio.AbstractServer] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def port(self) -> int:
        """The bound port (differs from the requested one when that was 0)."""
        if self._server is None or not self._server.sockets:
            return self.requested_port
        return self._server.sockets[0].getsockname()[1]

    @property
    def listening(self) -> bool:
        return self.state is ListenerState.LISTENING

    async def start(self) -> None:
        if self.state is not ListenerState.IDLE:
            raise ListenerStateError(f"Cannot start a listener that is {self.state.value}")
        self._server = await asyncio.start_server(
            self._on_connection, host=self.host, port=self.requested_port
        )
        self.state = ListenerState.LISTENING
        logger.info(f"[webhook] Listening on {self.host}:{self.port}")

    def stop(self) -> None:
        """
        Close the listening socket. Idempotent.

        Connections already accepted keep running to completion.
        """
        if self.state is ListenerState.STOPPED:
            return
        port = self.port
        if self._server is not None:
            self._server.close()
        self.state = ListenerState.STOPPED
        logger.info(f"[webhook] Stopped listening on port {port}")

    async def wait_idle(self) -> None:
        """Wait until every in-flight connection has been handled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _on_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            await self._handle_one(reader, writer)
        finally:
            if task is not None:
                self._tasks.discard(task)
            writer.close()

    async def _handle_one(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            payload = await reader.read(self.max_payload)
        except (ConnectionError, OSError) as e:
            logger.debug(f"[webhook] Read failed: {e}")
            return
        if not payload:
            return

        try:
            writer.write(self.acknowledgment)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.warning(f"[webhook] Could not acknowledge trigger: {e}")

        try:
            if inspect.iscoroutinefunction(self.handler):
                await self.handler(payload)
            else:
                await asyncio.to_thread(self.handler, payload)
        except Exception:
            logger.exception("[webhook] Payload handler failed")
