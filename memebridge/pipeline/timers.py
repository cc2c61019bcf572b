"""
이름(키)으로 관리하는 asyncio 타이머.

재연결 백오프, stale 체크, OBS 숨김 타이머가 모두 여기 등록되어
종료 시 cancel_all() 한 번으로 남은 콜백이 실행되지 않도록 한다.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Union

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Union[Awaitable[Any], Any]]


def monotonic_ms() -> float:
    """파이프라인 공용 시계 (ms). 벽시계 점프 영향 없음."""
    return time.monotonic() * 1000.0


class TimerRegistry:
    """키당 대기 타이머 1개. 같은 키로 다시 예약하면 이전 대기 타이머는 취소된다."""

    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}
        self._firing: Dict[str, asyncio.Task] = {}
        self._closed = False

    def schedule(self, key: str, delay_ms: float, callback: TimerCallback) -> asyncio.Task:
        if self._closed:
            raise RuntimeError("TimerRegistry가 이미 닫혔습니다")
        old = self._pending.pop(key, None)
        if old is not None and old is not asyncio.current_task():
            old.cancel()
        task = asyncio.create_task(self._run(key, delay_ms, callback), name=f"timer:{key}")
        self._pending[key] = task
        return task

    async def _run(self, key: str, delay_ms: float, callback: TimerCallback) -> None:
        await asyncio.sleep(max(0.0, delay_ms) / 1000.0)
        me = asyncio.current_task()
        if self._pending.get(key) is me:
            del self._pending[key]
        self._firing[key] = me
        try:
            result = callback()
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("타이머 콜백 오류 (%s): %s", key, e, exc_info=True)
        finally:
            if self._firing.get(key) is me:
                del self._firing[key]

    def is_pending(self, key: str) -> bool:
        task = self._pending.get(key)
        return task is not None and not task.done()

    def cancel(self, key: str) -> bool:
        """대기 중이거나 실행 중인 타이머 취소 (호출한 태스크 자신은 제외)."""
        cancelled = False
        current = asyncio.current_task()
        for table in (self._pending, self._firing):
            task = table.pop(key, None)
            if task is not None and task is not current and not task.done():
                task.cancel()
                cancelled = True
        return cancelled

    def cancel_all(self) -> int:
        keys = set(self._pending) | set(self._firing)
        count = sum(1 for key in keys if self.cancel(key))
        if count:
            logger.debug("타이머 %d개 취소", count)
        return count

    def close(self) -> int:
        """이후 예약을 막고 남은 타이머 전부 취소"""
        self._closed = True
        return self.cancel_all()

    def __len__(self) -> int:
        return len(self._pending) + len(self._firing)
