import asyncio

import pytest

from fakes import meme

from memebridge.overlay.relay_client import (
    RELAY_RECONNECT_TIMER,
    RelayClient,
    RelayOverlayDispatcher,
    RelayStatusChannel,
)
from memebridge.pipeline import ConnectionStatus, DispatchError, TimerRegistry


class FakeSocket:
    """socketio.AsyncClient 대역"""

    def __init__(self, connected: bool = True, fail_connect: bool = False) -> None:
        self.connected = connected
        self.fail_connect = fail_connect
        self.emitted: list[tuple[str, dict]] = []
        self.connect_calls = 0

    async def connect(self, url, transports=None):
        self.connect_calls += 1
        if self.fail_connect:
            raise ConnectionError("server down")
        self.connected = True

    async def emit(self, event, data):
        self.emitted.append((event, data))

    async def disconnect(self):
        self.connected = False


def _relay(sock: FakeSocket, timers: TimerRegistry, **kwargs) -> RelayClient:
    relay = RelayClient("http://127.0.0.1:3000", timers=timers, **kwargs)
    relay.sio = sock
    return relay


def test_status_channel_forwards_payloads() -> None:
    sock = FakeSocket()

    async def scenario() -> None:
        relay = _relay(sock, TimerRegistry())
        channel = RelayStatusChannel(relay)
        channel.connection_status(ConnectionStatus("reconnecting", "Retry 1/10 in 2s", 1, 2, timestamp=1000.0))
        channel.queue_update(4)
        await relay.close()

    asyncio.run(scenario())
    assert sock.emitted == [
        (
            "connection_status",
            {
                "status": "reconnecting",
                "details": "Retry 1/10 in 2s",
                "reconnectAttempts": 1,
                "nextRetryIn": 2,
                "timestamp": 1000,
            },
        ),
        ("queue_update", {"queueSize": 4}),
    ]


def test_status_is_dropped_while_disconnected() -> None:
    sock = FakeSocket(connected=False)

    async def scenario() -> None:
        relay = _relay(sock, TimerRegistry())
        assert relay.send("queue_update", {"queueSize": 1}) is False

    asyncio.run(scenario())
    assert sock.emitted == []


def test_dispatcher_emits_trigger_or_raises_when_offline() -> None:
    online = FakeSocket()
    offline = FakeSocket(connected=False)

    async def scenario() -> None:
        await RelayOverlayDispatcher(_relay(online, TimerRegistry())).show_then_hide(meme("wow", "!wow"))
        with pytest.raises(DispatchError):
            await RelayOverlayDispatcher(_relay(offline, TimerRegistry())).show_then_hide(meme("wow", "!wow"))

    asyncio.run(scenario())
    assert online.emitted == [
        ("trigger_meme", {"meme": {"namespace": "wow", "command": "!wow", "filePath": "wow.gif", "duration": 5000}})
    ]


def test_failed_connect_schedules_retry() -> None:
    sock = FakeSocket(connected=False, fail_connect=True)

    async def scenario() -> None:
        timers = TimerRegistry()
        relay = _relay(sock, timers, max_attempts=1)
        await relay.start()
        assert relay.attempts == 1
        assert timers.is_pending(RELAY_RECONNECT_TIMER)
        await relay.close()
        assert len(timers) == 0

    asyncio.run(scenario())
    assert sock.connect_calls == 1


def test_memes_updated_invokes_reload_callback() -> None:
    reloads = []

    async def scenario() -> None:
        relay = _relay(FakeSocket(), TimerRegistry(), on_memes_updated=lambda: reloads.append(True))
        await relay._on_memes_updated({})

    asyncio.run(scenario())
    assert reloads == [True]


def test_relay_keeps_the_given_registry() -> None:
    async def scenario() -> None:
        timers = TimerRegistry()
        assert _relay(FakeSocket(), timers).timers is timers

    asyncio.run(scenario())


def test_played_memes_are_forwarded_only_when_asked() -> None:
    quiet = FakeSocket()
    forwarding = FakeSocket()

    async def scenario() -> None:
        for sock, forward in ((quiet, False), (forwarding, True)):
            relay = _relay(sock, TimerRegistry())
            RelayStatusChannel(relay, forward_triggers=forward).trigger_meme(meme("wow", "!wow"))
            await relay.close()

    asyncio.run(scenario())
    assert quiet.emitted == []
    assert forwarding.emitted == [
        ("trigger_meme", {"meme": {"namespace": "wow", "command": "!wow", "filePath": "wow.gif", "duration": 5000}})
    ]
