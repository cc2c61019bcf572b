"""
재생 큐 + 스케줄러.

큐는 FIFO, 소비자는 스케줄러 하나. 스케줄러는 tick 마다
  1) 큐가 비었으면 아무것도 안 함
  2) 마지막 재생 후 global cooldown 이 안 지났으면 아무것도 안 함
  3) 아니면 맨 앞 하나를 꺼내 디스패처로 보냄
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from ..catalog.models import TriggerDefinition
from ..config import GLOBAL_COOLDOWN_MS, QUEUE_TICK_MS
from .dispatcher import OverlayDispatcher
from .status import StatusChannel
from .timers import monotonic_ms

logger = logging.getLogger(__name__)


class PlaybackQueue:
    """허용된 밈 대기열. max_size <= 0 이면 무제한."""

    def __init__(self, max_size: int = 0):
        self.max_size = max_size
        self._items: Deque[TriggerDefinition] = deque()

    def is_full(self) -> bool:
        return self.max_size > 0 and len(self._items) >= self.max_size

    def push(self, meme: TriggerDefinition) -> bool:
        if self.is_full():
            return False
        self._items.append(meme)
        return True

    def pop(self) -> Optional[TriggerDefinition]:
        return self._items.popleft() if self._items else None

    def snapshot(self) -> List[TriggerDefinition]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class PlaybackScheduler:
    """cooldown 창마다 최대 1개씩 디스패치"""

    def __init__(
        self,
        queue: PlaybackQueue,
        dispatcher: OverlayDispatcher,
        status: StatusChannel,
        cooldown_ms: int = GLOBAL_COOLDOWN_MS,
        tick_ms: int = QUEUE_TICK_MS,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.queue = queue
        self.dispatcher = dispatcher
        self.status = status
        self.cooldown_ms = cooldown_ms
        self.tick_ms = tick_ms
        self.clock = clock
        self.last_played_at: Optional[float] = None  # None = 아직 재생한 적 없음

    def ready(self, now: float) -> bool:
        return self.last_played_at is None or now - self.last_played_at >= self.cooldown_ms

    async def tick(self) -> Optional[TriggerDefinition]:
        """한 번 검사. 디스패치에 성공한 밈을 반환."""
        if not len(self.queue):
            return None
        now = self.clock()
        if not self.ready(now):
            return None

        meme = self.queue.pop()
        logger.info("Dequeued meme: %s", meme.namespace)
        dispatched: Optional[TriggerDefinition] = None
        try:
            await self.dispatcher.show_then_hide(meme)
        except Exception as e:
            logger.error("Failed to trigger meme '%s' (버림): %s", meme.namespace, e)
        else:
            self.last_played_at = now
            dispatched = meme
            logger.info("Sent meme '%s' to overlay dispatcher", meme.namespace)
            self.status.trigger_meme(meme)
        self.status.queue_update(len(self.queue))
        return dispatched

    async def run(self) -> None:
        """tick_ms 간격으로 tick() 반복 (취소될 때까지)"""
        logger.info("재생 스케줄러 시작 (tick=%dms, cooldown=%dms)", self.tick_ms, self.cooldown_ms)
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("재생 스케줄러 tick 오류: %s", e, exc_info=True)
            await asyncio.sleep(self.tick_ms / 1000.0)
