"""
Tests for repomirror/webhook/listener.py and trigger.py

Each test runs its own event loop and binds an ephemeral port on
localhost.
"""

import asyncio
import threading
from unittest import mock

import pytest

from repomirror.webhook.listener import (
    ACKNOWLEDGMENT,
    MAX_PAYLOAD,
    ListenerState,
    ListenerStateError,
    TriggerListener,
)
from repomirror.webhook.trigger import ResyncTrigger, listener_for

HOST = "127.0.0.1"
TIMEOUT = 5


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _send(port: int, payload: bytes) -> bytes:
    """Send one payload and return everything the listener writes back."""
    reader, writer = await asyncio.open_connection(HOST, port)
    writer.write(payload)
    await writer.drain()
    data = await asyncio.wait_for(reader.read(), TIMEOUT)
    writer.close()
    await writer.wait_closed()
    return data


def _listener(handler) -> TriggerListener:
    return TriggerListener(port=0, handler=handler, host=HOST)


# ---------------------------------------------------------------------------
# Connection handling
# ---------------------------------------------------------------------------

class TestConnections:

    def test_ack_then_handler(self):
        received = []

        async def scenario():
            listener = _listener(received.append)
            await listener.start()
            try:
                reply = await _send(listener.port, b"GET /?token=abc HTTP/1.1\r\n\r\n")
            finally:
                listener.stop()
            return reply

        reply = asyncio.run(scenario())

        assert reply == ACKNOWLEDGMENT
        assert received == [b"GET /?token=abc HTTP/1.1\r\n\r\n"]

    def test_ack_sent_before_handler_runs(self):
        """The handler waits for the client to have read the ACK."""

        async def scenario():
            acked = asyncio.Event()
            handled = []

            async def handler(payload):
                await asyncio.wait_for(acked.wait(), TIMEOUT)
                handled.append(payload)

            listener = _listener(handler)
            await listener.start()
            reader, writer = await asyncio.open_connection(HOST, listener.port)
            writer.write(b"ping")
            await writer.drain()

            ack = await asyncio.wait_for(reader.readexactly(len(ACKNOWLEDGMENT)), TIMEOUT)
            acked.set()
            rest = await asyncio.wait_for(reader.read(), TIMEOUT)
            writer.close()
            listener.stop()
            return ack, rest, handled

        ack, rest, handled = asyncio.run(scenario())

        assert ack == ACKNOWLEDGMENT
        assert rest == b""
        assert handled == [b"ping"]

    def test_payload_is_bounded(self):

        async def scenario():
            got = asyncio.Event()
            received = []

            async def handler(payload):
                received.append(payload)
                got.set()

            listener = _listener(handler)
            await listener.start()
            reader, writer = await asyncio.open_connection(HOST, listener.port)
            writer.write(b"x" * (MAX_PAYLOAD * 4))
            await writer.drain()
            await asyncio.wait_for(got.wait(), TIMEOUT)
            writer.close()
            listener.stop()
            await listener.wait_idle()
            return received

        received = asyncio.run(scenario())

        assert len(received) == 1
        assert 0 < len(received[0]) <= MAX_PAYLOAD

    def test_empty_connection_gets_nothing(self):
        handler = mock.Mock()

        async def scenario():
            listener = _listener(handler)
            await listener.start()
            reader, writer = await asyncio.open_connection(HOST, listener.port)
            writer.write_eof()
            data = await asyncio.wait_for(reader.read(), TIMEOUT)
            writer.close()
            listener.stop()
            return data

        assert asyncio.run(scenario()) == b""
        handler.assert_not_called()

    def test_handler_failure_keeps_listening(self):
        calls = []

        def handler(payload):
            calls.append(payload)
            if payload == b"first":
                raise RuntimeError("boom")

        async def scenario():
            listener = _listener(handler)
            await listener.start()
            first = await _send(listener.port, b"first")
            second = await _send(listener.port, b"second")
            listener.stop()
            return first, second

        first, second = asyncio.run(scenario())

        assert first == ACKNOWLEDGMENT
        assert second == ACKNOWLEDGMENT
        assert calls == [b"first", b"second"]

    def test_sync_handler_runs_off_loop(self):
        threads = []

        def handler(payload):
            threads.append(threading.current_thread())

        async def scenario():
            listener = _listener(handler)
            await listener.start()
            await _send(listener.port, b"go")
            listener.stop()

        asyncio.run(scenario())

        assert len(threads) == 1
        assert threads[0] is not threading.main_thread()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:

    def test_states(self):

        async def scenario():
            listener = _listener(mock.Mock())
            assert listener.state is ListenerState.IDLE
            await listener.start()
            assert listener.listening
            assert listener.port != 0
            listener.stop()
            assert listener.state is ListenerState.STOPPED

        asyncio.run(scenario())

    def test_cannot_start_twice(self):

        async def scenario():
            listener = _listener(mock.Mock())
            await listener.start()
            try:
                with pytest.raises(ListenerStateError):
                    await listener.start()
            finally:
                listener.stop()

        asyncio.run(scenario())

    def test_cannot_restart_after_stop(self):

        async def scenario():
            listener = _listener(mock.Mock())
            await listener.start()
            listener.stop()
            listener.stop()
            with pytest.raises(ListenerStateError):
                await listener.start()

        asyncio.run(scenario())

    def test_stop_refuses_new_connections(self):

        async def scenario():
            listener = _listener(mock.Mock())
            await listener.start()
            port = listener.port
            listener.stop()
            await asyncio.sleep(0)
            with pytest.raises(OSError):
                await asyncio.open_connection(HOST, port)

        asyncio.run(scenario())

    def test_port_in_use(self):

        async def scenario():
            first = _listener(mock.Mock())
            await first.start()
            try:
                second = TriggerListener(port=first.port, handler=mock.Mock(), host=HOST)
                with pytest.raises(OSError):
                    await second.start()
            finally:
                first.stop()

        asyncio.run(scenario())


# ---------------------------------------------------------------------------
# ResyncTrigger
# ---------------------------------------------------------------------------

class TestResyncTrigger:

    def test_forwards_payload(self):
        mirror = mock.Mock()
        mirror.trigger.return_value = "updated"

        assert ResyncTrigger(mirror)(b"token") == "updated"
        mirror.trigger.assert_called_once_with(b"token")

    def test_listener_for_uses_mirror_config(self):
        mirror = mock.Mock()
        mirror.config.listen_port = 62672
        mirror.config.listen_host = "127.0.0.1"

        listener = listener_for(mirror)

        assert listener.requested_port == 62672
        assert listener.host == "127.0.0.1"
        assert isinstance(listener.handler, ResyncTrigger)
        assert listener.state is ListenerState.IDLE

    def test_end_to_end(self):
        mirror = mock.Mock()

        async def scenario():
            mirror.config.listen_port = 0
            mirror.config.listen_host = HOST
            listener = listener_for(mirror)
            await listener.start()
            reply = await _send(listener.port, b"hook")
            listener.stop()
            return reply

        assert asyncio.run(scenario()) == ACKNOWLEDGMENT
        mirror.trigger.assert_called_once_with(b"hook")
