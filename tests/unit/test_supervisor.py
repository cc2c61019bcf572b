import asyncio
from datetime import datetime

from fakes import FakeClock, RecordingStatus, ScriptedChatClient

from memebridge.chat import ChatConnectionError, ChatMessage, ConnectionState, ConnectionSupervisor, ReconnectPolicy
from memebridge.chat.supervisor import STALE_TIMER
from memebridge.pipeline import TimerRegistry


def _policy(**overrides) -> ReconnectPolicy:
    values = dict(
        base_delay_ms=1,
        max_delay_ms=8,
        max_attempts=10,
        jitter_ms=0,
        handshake_timeout_ms=1_000,
        stale_after_ms=300_000,
        stale_check_interval_ms=60_000,
    )
    values.update(overrides)
    return ReconnectPolicy(**values)


def _supervisor(client: ScriptedChatClient, status: RecordingStatus, **kwargs) -> ConnectionSupervisor:
    kwargs.setdefault("policy", _policy())
    kwargs.setdefault("timers", TimerRegistry())
    kwargs.setdefault("rng", lambda: 0.0)
    return ConnectionSupervisor(client, status, **kwargs)


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


def test_successful_connect_reports_connecting_then_connected() -> None:
    client = ScriptedChatClient()
    status = RecordingStatus()
    supervisor = _supervisor(client, status)

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.CONNECTED)
        await supervisor.stop()

    asyncio.run(scenario())
    assert status.states == ["connecting", "connected"]
    assert status.statuses[0].details == "Attempt 1/10"
    assert status.statuses[1].details == "Connected to testchannel"
    assert all(s.next_retry_in is None for s in status.statuses)
    assert client.connect_calls == 1


def test_remote_close_reconnects_and_resets_attempts() -> None:
    client = ScriptedChatClient()
    status = RecordingStatus()
    supervisor = _supervisor(client, status)

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.CONNECTED)
        client.end_session()
        await _wait_until(lambda: client.connect_calls == 2 and supervisor.state == ConnectionState.CONNECTED)
        await supervisor.stop()

    asyncio.run(scenario())
    assert status.states == [
        "connecting",
        "connected",
        "disconnected",
        "reconnecting",
        "connecting",
        "connected",
    ]
    reconnecting = status.statuses[3]
    assert reconnecting.reconnect_attempts == 1
    assert reconnecting.next_retry_in == 1
    assert reconnecting.details == "Retry 1/10 in 1s"
    assert status.statuses[4].next_retry_in is None
    assert supervisor.attempts == 0


def test_listen_error_transitions_through_error_state() -> None:
    client = ScriptedChatClient()
    status = RecordingStatus()
    supervisor = _supervisor(client, status)

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.CONNECTED)
        client.end_session(ChatConnectionError("socket reset"))
        await _wait_until(lambda: client.connect_calls == 2 and supervisor.state == ConnectionState.CONNECTED)
        await supervisor.stop()

    asyncio.run(scenario())
    assert status.states[2] == "error"
    assert status.statuses[2].details == "socket reset"


def test_gives_up_after_max_attempts() -> None:
    client = ScriptedChatClient([ChatConnectionError("refused")] * 20)
    status = RecordingStatus()
    timers = TimerRegistry()
    supervisor = _supervisor(client, status, policy=_policy(max_attempts=3), timers=timers)

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.FAILED)
        await asyncio.sleep(0.05)
        assert len(timers) == 0
        await supervisor.stop()

    asyncio.run(scenario())
    # 첫 시도 + 재시도 3회
    assert client.connect_calls == 4
    assert status.states == [
        "connecting", "error", "reconnecting",
        "connecting", "error", "reconnecting",
        "connecting", "error", "reconnecting",
        "connecting", "error", "failed",
    ]
    assert status.statuses[-1].details == "Max reconnection attempts reached"
    assert status.statuses[-1].reconnect_attempts == 3
    assert [s.reconnect_attempts for s in status.statuses if s.status == "reconnecting"] == [1, 2, 3]


def test_failed_state_ignores_further_connect_requests() -> None:
    client = ScriptedChatClient([ChatConnectionError("refused")] * 5)
    status = RecordingStatus()
    supervisor = _supervisor(client, status, policy=_policy(max_attempts=0))

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.FAILED)
        await supervisor._attempt_connect()
        await supervisor.stop()

    asyncio.run(scenario())
    assert client.connect_calls == 1
    assert status.states == ["connecting", "error", "failed"]


def test_handshake_timeout_is_reported_as_error() -> None:
    client = ScriptedChatClient(["hang"])
    status = RecordingStatus()
    supervisor = _supervisor(client, status, policy=_policy(handshake_timeout_ms=20))

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: client.connect_calls == 2 and supervisor.state == ConnectionState.CONNECTED)
        await supervisor.stop()

    asyncio.run(scenario())
    assert status.states[:3] == ["connecting", "error", "reconnecting"]
    assert status.statuses[1].details.startswith("Connection timeout after")


def test_stale_connection_is_recycled() -> None:
    clock = FakeClock(0)
    client = ScriptedChatClient()
    status = RecordingStatus()
    supervisor = _supervisor(
        client,
        status,
        clock=clock,
        policy=_policy(stale_after_ms=1_000, stale_check_interval_ms=5),
    )

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.CONNECTED)
        await asyncio.sleep(0.02)
        assert status.states == ["connecting", "connected"]
        clock.advance(1_001)
        await _wait_until(lambda: client.connect_calls == 2 and supervisor.state == ConnectionState.CONNECTED)
        await supervisor.stop()

    asyncio.run(scenario())
    assert status.states[2] == "error"
    assert status.statuses[2].details == "Connection appears stale"


def test_incoming_message_refreshes_activity_and_reaches_downstream() -> None:
    clock = FakeClock(0)
    client = ScriptedChatClient()
    received = []
    supervisor = _supervisor(client, RecordingStatus(), clock=clock, on_message=received.append)
    message = ChatMessage(
        user="viewer",
        message="!wow",
        timestamp=datetime.now(),
        channel_id="testchannel",
        platform="fake",
    )

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.CONNECTED)
        clock.advance(42)
        await client._emit_message(message)
        await supervisor.stop()

    asyncio.run(scenario())
    assert received == [message]
    assert supervisor.last_activity == 42


def test_stop_cancels_pending_reconnect() -> None:
    client = ScriptedChatClient([ChatConnectionError("refused")])
    status = RecordingStatus()
    timers = TimerRegistry()
    supervisor = _supervisor(
        client, status, timers=timers, policy=_policy(base_delay_ms=10_000, max_delay_ms=10_000)
    )

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.RECONNECTING)
        assert status.statuses[-1].next_retry_in == 10
        await supervisor.stop()
        assert len(timers) == 0
        await asyncio.sleep(0.02)

    asyncio.run(scenario())
    assert client.connect_calls == 1
    assert client.disconnect_calls >= 2
    assert supervisor.shutting_down


def test_stop_during_handshake_abandons_attempt() -> None:
    client = ScriptedChatClient(["hang"])
    status = RecordingStatus()
    timers = TimerRegistry()
    supervisor = _supervisor(client, status, timers=timers, policy=_policy(handshake_timeout_ms=60_000))

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: client.connect_calls == 1)
        await supervisor.stop()
        await asyncio.sleep(0.02)
        assert len(timers) == 0

    asyncio.run(scenario())
    assert status.states == ["connecting"]


def test_duplicate_loss_signal_for_same_session_is_ignored() -> None:
    client = ScriptedChatClient()
    status = RecordingStatus()
    supervisor = _supervisor(client, status, policy=_policy(base_delay_ms=10_000, max_delay_ms=10_000))

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.CONNECTED)
        client.end_session(ChatConnectionError("reset"))
        await _wait_until(lambda: supervisor.state == ConnectionState.RECONNECTING)
        await supervisor._on_connection_lost(ConnectionState.DISCONNECTED, "late close")
        await supervisor.stop()

    asyncio.run(scenario())
    assert status.states == ["connecting", "connected", "error", "reconnecting"]
    assert supervisor.attempts == 1


def test_reconnect_delay_doubles_and_is_capped() -> None:
    policy = ReconnectPolicy()

    assert [policy.delay_for(n) for n in range(4)] == [1_000, 2_000, 4_000, 8_000]
    assert policy.delay_for(8) == 256_000
    assert policy.delay_for(9) == 300_000
    assert policy.delay_for(9, jitter=999) == 300_000
    assert policy.delay_for(20, jitter=999) == 300_000


def test_reconnect_delay_is_non_decreasing_with_jitter() -> None:
    policy = ReconnectPolicy()

    for attempts in range(policy.max_attempts):
        assert policy.delay_for(attempts, jitter=999) <= policy.delay_for(attempts + 1, jitter=0)


def test_timers_are_scheduled_on_the_given_registry() -> None:
    client = ScriptedChatClient()
    timers = TimerRegistry()
    supervisor = _supervisor(client, RecordingStatus(), timers=timers)

    assert supervisor.timers is timers

    async def scenario() -> None:
        supervisor.start()
        await _wait_until(lambda: supervisor.state == ConnectionState.CONNECTED)
        assert timers.is_pending(STALE_TIMER)
        assert timers.close() == 1
        await supervisor.stop()

    asyncio.run(scenario())
