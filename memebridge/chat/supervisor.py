"""
채팅 연결 감독자: 재연결 상태 머신.

disconnected → connecting → connected → (error|disconnected) → reconnecting → connecting ...
재시도 예산(max_attempts)을 다 쓰면 failed 에서 멈춘다 (프로세스 재시작 필요).
상태가 바뀔 때마다 StatusChannel 로 connection_status 알림을 보낸다.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import (
    HANDSHAKE_TIMEOUT_MS,
    RECONNECT_BASE_DELAY_MS,
    RECONNECT_JITTER_MS,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY_MS,
    STALE_AFTER_MS,
    STALE_CHECK_INTERVAL_MS,
)
from ..pipeline.status import ConnectionStatus, StatusChannel
from ..pipeline.timers import TimerRegistry, monotonic_ms
from .base_client import ChatClient, ChatMessage, MessageCallback

logger = logging.getLogger(__name__)

RECONNECT_TIMER = "chat:reconnect"
STALE_TIMER = "chat:stale-check"


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"
    FAILED = "failed"


@dataclass
class ReconnectPolicy:
    """백오프/타임아웃 설정 (ms)"""
    base_delay_ms: int = RECONNECT_BASE_DELAY_MS
    max_delay_ms: int = RECONNECT_MAX_DELAY_MS
    max_attempts: int = RECONNECT_MAX_ATTEMPTS
    jitter_ms: int = RECONNECT_JITTER_MS
    handshake_timeout_ms: int = HANDSHAKE_TIMEOUT_MS
    stale_after_ms: int = STALE_AFTER_MS
    stale_check_interval_ms: int = STALE_CHECK_INTERVAL_MS

    def delay_for(self, attempts: int, jitter: float = 0.0) -> int:
        """attempts 번 실패한 뒤의 재시도 지연. jitter 포함해도 max_delay_ms 를 넘지 않음."""
        return int(min(self.base_delay_ms * (2 ** attempts) + jitter, self.max_delay_ms))


class ConnectionSupervisor:
    """ChatClient 하나의 연결 수명을 관리"""

    def __init__(
        self,
        client: ChatClient,
        status: StatusChannel,
        on_message: Optional[MessageCallback] = None,
        policy: Optional[ReconnectPolicy] = None,
        timers: Optional[TimerRegistry] = None,
        clock: Callable[[], float] = monotonic_ms,
        rng: Callable[[], float] = random.random,
    ):
        self.client = client
        self.status = status
        self.on_message = on_message
        self.policy = policy or ReconnectPolicy()
        self.timers = timers if timers is not None else TimerRegistry()
        self.clock = clock
        self.rng = rng

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.delay_ms = self.policy.base_delay_ms
        self.last_activity: Optional[float] = None
        self._shutting_down = False
        self._listen_task: Optional[asyncio.Task] = None

        client.on_message = self._handle_message

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    # ---- 알림 ----

    def _transition(self, state: ConnectionState, details: Optional[str] = None) -> None:
        self.state = state
        next_retry_in = (
            math.ceil(self.delay_ms / 1000) if self.timers.is_pending(RECONNECT_TIMER) else None
        )
        logger.info(
            f"[{self.client.platform_name}] 상태: {state.value}"
            + (f" - {details}" if details else "")
        )
        try:
            self.status.connection_status(
                ConnectionStatus(
                    status=state.value,
                    details=details,
                    reconnect_attempts=self.attempts,
                    next_retry_in=next_retry_in,
                )
            )
        except Exception as e:
            logger.warning(f"상태 알림 실패: {e}")

    # ---- 수명 ----

    def start(self) -> None:
        """첫 연결 시도를 예약 (stop() 으로 언제든 취소 가능)"""
        if self._shutting_down:
            raise RuntimeError("이미 종료된 감독자입니다")
        self.timers.schedule(RECONNECT_TIMER, 0, self._attempt_connect)

    async def stop(self) -> None:
        """종료: 재시도/stale 타이머 취소 → 수신 태스크 취소 → 연결 해제 (best-effort)"""
        if self._shutting_down:
            return
        self._shutting_down = True
        self.timers.cancel(RECONNECT_TIMER)
        self.timers.cancel(STALE_TIMER)
        task, self._listen_task = self._listen_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        try:
            await self.client.disconnect()
        except Exception as e:
            logger.warning(f"[{self.client.platform_name}] 종료 중 연결 해제 실패: {e}")
        logger.info(f"[{self.client.platform_name}] 감독자 종료 (상태 {self.state.value})")

    async def _attempt_connect(self) -> None:
        if self._shutting_down or self.state == ConnectionState.FAILED:
            return

        # 이전 연결이 남아 있으면 정리
        try:
            await self.client.disconnect()
        except Exception as e:
            logger.debug(f"기존 연결 해제 중 오류 무시: {e}")

        self._transition(
            ConnectionState.CONNECTING,
            f"Attempt {self.attempts + 1}/{self.policy.max_attempts}",
        )
        timeout_s = self.policy.handshake_timeout_ms / 1000
        try:
            await asyncio.wait_for(self.client.connect(), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.error(f"[{self.client.platform_name}] 연결 타임아웃 ({timeout_s:g}초)")
            await self._on_connection_lost(
                ConnectionState.ERROR, f"Connection timeout after {timeout_s:g} seconds"
            )
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self.client.platform_name}] 연결 실패: {e}")
            await self._on_connection_lost(ConnectionState.ERROR, str(e) or type(e).__name__)
            return

        self.attempts = 0
        self.delay_ms = self.policy.base_delay_ms
        self.last_activity = self.clock()
        self._transition(ConnectionState.CONNECTED, f"Connected to {self.client.channel_id}")
        self._listen_task = asyncio.create_task(self._listen(), name="chat-listen")
        self._arm_stale_check()

    async def _listen(self) -> None:
        try:
            await self.client.listen()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self.client.platform_name}] 수신 오류: {e}")
            await self._on_connection_lost(ConnectionState.ERROR, str(e) or type(e).__name__)
            return
        await self._on_connection_lost(ConnectionState.DISCONNECTED, "Connection closed by remote")

    async def _on_connection_lost(self, state: ConnectionState, details: str) -> None:
        """오류/끊김 공통 처리. 같은 세션에 대해 두 번 오면 무시."""
        if self._shutting_down:
            return
        if self.state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        self.timers.cancel(STALE_TIMER)
        task, self._listen_task = self._listen_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        self._transition(state, details)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._shutting_down:
            return
        if self.attempts >= self.policy.max_attempts:
            logger.error(
                f"[{self.client.platform_name}] 최대 재연결 시도 횟수 "
                f"({self.policy.max_attempts}) 초과. 수동 재시작 필요."
            )
            self._transition(ConnectionState.FAILED, "Max reconnection attempts reached")
            return

        self.delay_ms = self.policy.delay_for(self.attempts, self.rng() * self.policy.jitter_ms)
        self.attempts += 1
        self.timers.schedule(RECONNECT_TIMER, self.delay_ms, self._attempt_connect)
        self._transition(
            ConnectionState.RECONNECTING,
            f"Retry {self.attempts}/{self.policy.max_attempts} "
            f"in {math.ceil(self.delay_ms / 1000)}s",
        )

    # ---- 활동 감시 ----

    def _arm_stale_check(self) -> None:
        self.timers.schedule(STALE_TIMER, self.policy.stale_check_interval_ms, self._check_stale)

    async def _check_stale(self) -> None:
        if self._shutting_down or self.state != ConnectionState.CONNECTED:
            return
        idle = self.clock() - (self.last_activity or 0)
        if idle > self.policy.stale_after_ms:
            logger.warning(
                f"[{self.client.platform_name}] {idle / 1000:.0f}초 동안 채팅 없음, 재연결"
            )
            await self._on_connection_lost(ConnectionState.ERROR, "Connection appears stale")
            return
        self._arm_stale_check()

    async def _handle_message(self, message: ChatMessage) -> None:
        self.last_activity = self.clock()
        if not self.on_message:
            return
        try:
            cb = self.on_message(message)
            if asyncio.iscoroutine(cb):
                await cb
        except Exception as e:
            logger.error(f"채팅 처리 오류 (무시): {e}", exc_info=True)
