"""
스트림 매니저 → 설정/오버레이 서버 Socket.IO 클라이언트.

- 상태 알림(connection_status, queue_update)과 trigger_meme 을 서버로 보냄
- 서버가 보내는 memes_updated 를 받아 카탈로그 리로드 콜백 호출
- 재연결은 수동 관리: min(1초 * 2^n, 30초), 최대 5회
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set, Union

import socketio

from ..catalog.models import TriggerDefinition
from ..pipeline.dispatcher import DispatchError, OverlayDispatcher
from ..pipeline.status import ConnectionStatus, StatusChannel
from ..pipeline.timers import TimerRegistry

logger = logging.getLogger(__name__)

RELAY_RECONNECT_TIMER = "relay:reconnect"
RELAY_MAX_ATTEMPTS = 5
RELAY_BASE_DELAY_MS = 1_000
RELAY_MAX_DELAY_MS = 30_000


class RelayClient:
    """서버와의 Socket.IO 연결 (fire-and-forget 전송)"""

    def __init__(
        self,
        url: str,
        on_memes_updated: Optional[Callable[[], Union[Awaitable[None], None]]] = None,
        timers: Optional[TimerRegistry] = None,
        max_attempts: int = RELAY_MAX_ATTEMPTS,
    ):
        self.url = url
        self.on_memes_updated = on_memes_updated
        self.timers = timers if timers is not None else TimerRegistry()
        self.max_attempts = max_attempts
        self.attempts = 0
        self._closing = False
        self._sends: Set[asyncio.Task] = set()

        # 수동 재연결 관리 (socketio 자체 재연결 비활성화)
        self.sio = socketio.AsyncClient(
            reconnection=False,
            logger=False,
            engineio_logger=False,
        )
        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("memes_updated", self._on_memes_updated)

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    async def start(self) -> None:
        """첫 연결. 실패해도 예외 없이 재시도를 예약한다."""
        await self._connect()

    async def _connect(self) -> None:
        if self._closing or self.connected:
            return
        try:
            await self.sio.connect(self.url, transports=["websocket"])
        except Exception as e:
            logger.error("설정 서버 연결 실패 (%s): %s", self.url, e)
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing or self.attempts >= self.max_attempts:
            if self.attempts >= self.max_attempts:
                logger.error("설정 서버 재연결 포기 (%d회 시도)", self.attempts)
            return
        self.attempts += 1
        delay = min(RELAY_BASE_DELAY_MS * (2 ** self.attempts), RELAY_MAX_DELAY_MS)
        logger.info(
            "설정 서버 재연결 예약: %dms 후 (시도 %d/%d)", delay, self.attempts, self.max_attempts
        )
        self.timers.schedule(RELAY_RECONNECT_TIMER, delay, self._connect)

    async def _on_connect(self) -> None:
        logger.info("설정 서버 연결됨: %s", self.url)
        self.attempts = 0

    async def _on_disconnect(self, *args) -> None:
        logger.info("설정 서버 연결 끊김")
        if not self._closing:
            self._schedule_reconnect()

    async def _on_memes_updated(self, data: Any = None) -> None:
        logger.info("밈 설정 변경 알림 수신, 리로드")
        if not self.on_memes_updated:
            return
        try:
            cb = self.on_memes_updated()
            if asyncio.iscoroutine(cb):
                await cb
        except Exception as e:
            logger.error("밈 설정 리로드 실패: %s", e, exc_info=True)

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        """연결돼 있어야 전송 (아니면 DispatchError)"""
        if not self.connected:
            raise DispatchError("설정 서버에 연결되지 않음")
        await self.sio.emit(event, data)

    def send(self, event: str, data: dict[str, Any]) -> bool:
        """fire-and-forget 전송. 연결이 없으면 버리고 False."""
        if not self.connected:
            logger.debug("설정 서버 미연결, %s 알림 버림", event)
            return False
        task = asyncio.create_task(self.sio.emit(event, data))
        self._sends.add(task)
        task.add_done_callback(self._send_done)
        return True

    def _send_done(self, task: asyncio.Task) -> None:
        self._sends.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("설정 서버 전송 실패: %s", task.exception())

    async def close(self) -> None:
        self._closing = True
        self.timers.cancel(RELAY_RECONNECT_TIMER)
        if self._sends:
            await asyncio.gather(*self._sends, return_exceptions=True)
        if self.connected:
            await self.sio.disconnect()


class RelayStatusChannel(StatusChannel):
    """상태 알림을 서버로 중계 (서버가 웹 UI/오버레이로 브로드캐스트)

    forward_triggers: 디스패처가 서버가 아닐 때(OBS) 재생된 밈도 trigger_meme 으로 알림.
    릴레이 디스패처를 쓰면 디스패처가 이미 trigger_meme 을 보내므로 False.
    """

    def __init__(self, relay: RelayClient, forward_triggers: bool = False):
        self.relay = relay
        self.forward_triggers = forward_triggers

    def connection_status(self, status: ConnectionStatus) -> None:
        self.relay.send("connection_status", status.to_payload())

    def queue_update(self, queue_size: int) -> None:
        self.relay.send("queue_update", {"queueSize": queue_size})

    def trigger_meme(self, meme: TriggerDefinition) -> None:
        if self.forward_triggers:
            self.relay.send("trigger_meme", {"meme": meme.to_dict()})


class RelayOverlayDispatcher(OverlayDispatcher):
    """trigger_meme 을 서버로 보내면 서버가 브라우저 오버레이들에 뿌린다. 숨김은 오버레이 페이지가 처리."""

    def __init__(self, relay: RelayClient):
        self.relay = relay

    async def show_then_hide(self, meme: TriggerDefinition) -> None:
        await self.relay.emit("trigger_meme", {"meme": meme.to_dict()})
