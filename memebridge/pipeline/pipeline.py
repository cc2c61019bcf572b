"""
트리거 파이프라인: ledger / 큐 / 재생 커서를 단독으로 소유하고
AdmissionFilter 와 PlaybackScheduler 에 참조로 넘긴다.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Mapping, Optional

from ..catalog.models import TriggerDefinition
from ..config import DEBOUNCE_INTERVAL_MS, GLOBAL_COOLDOWN_MS, QUEUE_TICK_MS
from .admission import AdmissionFilter, ChatEvent, CooldownLedger, index_catalog
from .dispatcher import OverlayDispatcher
from .playback import PlaybackQueue, PlaybackScheduler
from .status import LoggingStatusChannel, StatusChannel
from .timers import monotonic_ms

logger = logging.getLogger(__name__)


class TriggerPipeline:
    """채팅 텍스트 → (허용) → 큐 → (tick) → 디스패처"""

    def __init__(
        self,
        dispatcher: OverlayDispatcher,
        status: Optional[StatusChannel] = None,
        catalog: Iterable[TriggerDefinition] = (),
        debounce_ms: int = DEBOUNCE_INTERVAL_MS,
        cooldown_ms: int = GLOBAL_COOLDOWN_MS,
        tick_ms: int = QUEUE_TICK_MS,
        queue_max: int = 0,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.status = status or LoggingStatusChannel()
        self.clock = clock
        self.ledger = CooldownLedger()
        self.queue = PlaybackQueue(max_size=queue_max)
        self.admission = AdmissionFilter(self.ledger, debounce_ms=debounce_ms)
        self.scheduler = PlaybackScheduler(
            self.queue,
            dispatcher,
            self.status,
            cooldown_ms=cooldown_ms,
            tick_ms=tick_ms,
            clock=clock,
        )
        self._catalog: dict[str, TriggerDefinition] = {}
        self._drain_task: Optional[asyncio.Task] = None
        self.load_catalog(catalog)

    @property
    def catalog(self) -> Mapping[str, TriggerDefinition]:
        return self._catalog

    def load_catalog(self, memes: Iterable[TriggerDefinition]) -> None:
        """카탈로그 교체 (핫 리로드). 큐에 이미 들어간 밈은 그대로 재생된다."""
        self._catalog = index_catalog(memes)
        self.ledger.retain(self._catalog.keys())
        logger.info("밈 %d개 로드", len(self._catalog))

    def handle_chat(self, content: str) -> Optional[TriggerDefinition]:
        """채팅 한 줄 처리. 큐에 들어간 밈을 반환 (무시/디바운스/큐 가득 참이면 None)."""
        event = ChatEvent(raw_text=content or "", received_at=self.clock())

        if self.queue.is_full():
            meme = self.admission.match(event.raw_text, self._catalog)
            if meme is not None:
                logger.warning(
                    "큐 가득 참 (%d), '%s' 요청 거절", self.queue.max_size, meme.command
                )
            return None

        meme = self.admission.admit(event, self._catalog)
        if meme is None:
            return None

        self.queue.push(meme)
        logger.info("Enqueued meme: %s", meme.namespace)
        self.status.queue_update(len(self.queue))
        return meme

    def start(self) -> asyncio.Task:
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self.scheduler.run(), name="playback-scheduler")
        return self._drain_task

    async def stop(self) -> None:
        task, self._drain_task = self._drain_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.scheduler.dispatcher.close()
        if len(self.queue):
            logger.info("종료 시 큐에 남은 밈 %d개 버림", len(self.queue))
