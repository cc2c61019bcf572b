"""
OBS WebSocket 디스패처. obsws-python 으로 장면 아이템을 켜고 duration 후 끈다.

브라우저 오버레이 대신 OBS 장면에 미리 넣어 둔 소스("<namespace>_meme" 또는 sourceName)를 토글하는 방식.
ReqClient 는 동기 클라이언트라 asyncio.to_thread 로 호출하고, 호출은 lock 으로 직렬화한다.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, Optional

import obsws_python as obs
from obsws_python.error import OBSSDKRequestError

from ..catalog.models import TriggerDefinition
from ..pipeline.dispatcher import DispatchError, OverlayDispatcher
from ..pipeline.timers import TimerRegistry

logger = logging.getLogger(__name__)

# OBS WebSocket RequestStatus.ResourceNotFound
OBS_RESOURCE_NOT_FOUND = 600


class ObsOverlayDispatcher(OverlayDispatcher):
    """OBS 장면 아이템 show → (duration) → hide"""

    def __init__(
        self,
        scene_name: str,
        host: str = "localhost",
        port: int = 4455,
        password: str = "",
        timers: Optional[TimerRegistry] = None,
        client_factory: Optional[Callable[[], Any]] = None,
    ):
        self.scene_name = scene_name
        self.timers = timers if timers is not None else TimerRegistry()
        self._client_factory = client_factory or (
            lambda: obs.ReqClient(host=host, port=port, password=password, timeout=5)
        )
        self._client = None
        self._item_ids: Dict[str, int] = {}  # source name → sceneItemId 캐시
        self._visible: Dict[str, int] = {}  # 숨김 대기 중인 타이머 키 → sceneItemId
        self._seq = itertools.count(1)
        self._lock = asyncio.Lock()

    async def _ensure_client(self) -> Any:
        if self._client is None:
            self._client = await asyncio.to_thread(self._client_factory)
            logger.info("OBS WebSocket 연결됨 (장면: %s)", self.scene_name)
        return self._client

    async def _resolve_item_id(self, source_name: str) -> int:
        cached = self._item_ids.get(source_name)
        if cached is not None:
            return cached
        resp = await asyncio.to_thread(
            self._client.get_scene_item_id, self.scene_name, source_name
        )
        item_id = int(resp.scene_item_id)
        self._item_ids[source_name] = item_id
        return item_id

    async def _set_enabled(self, item_id: int, enabled: bool) -> None:
        await asyncio.to_thread(
            self._client.set_scene_item_enabled, self.scene_name, item_id, enabled
        )

    async def show_then_hide(self, meme: TriggerDefinition) -> None:
        source = meme.obs_source_name
        async with self._lock:
            try:
                await self._ensure_client()
            except Exception as e:
                self._client = None
                raise DispatchError(f"OBS 연결 실패: {e}") from e

            try:
                item_id = await self._resolve_item_id(source)
            except OBSSDKRequestError as e:
                if e.code != OBS_RESOURCE_NOT_FOUND:
                    self._client = None
                    raise DispatchError(f"OBS 소스 '{source}' 조회 실패: {e}") from e
                # 장면/소스 없음. 연결은 살아 있음
                logger.error("Scene item '%s' not found in '%s': %s", source, self.scene_name, e)
                return
            except Exception as e:
                self._client = None
                raise DispatchError(f"OBS 소스 '{source}' 조회 실패: {e}") from e

            try:
                await self._set_enabled(item_id, True)
            except Exception as e:
                # 연결이 끊겼거나 아이템이 바뀐 경우: 다음 호출에서 다시 조회
                self._client = None
                self._item_ids.pop(source, None)
                raise DispatchError(f"OBS 소스 '{source}' 표시 실패: {e}") from e

        key = f"obs:hide:{meme.namespace}:{next(self._seq)}"
        self._visible[key] = item_id
        self.timers.schedule(key, meme.duration_ms, lambda: self._hide(key, source))
        logger.info("OBS source '%s' shown for %dms", source, meme.duration_ms)

    async def _hide(self, key: str, source: str) -> None:
        item_id = self._visible.pop(key, None)
        if item_id is None:
            return
        async with self._lock:
            try:
                if self._client is None:
                    await self._ensure_client()
                await self._set_enabled(item_id, False)
                logger.info("OBS source '%s' hidden again.", source)
            except Exception as e:
                logger.error("Error hiding source '%s': %s", source, e)

    async def close(self) -> None:
        """숨김 대기 타이머 취소 후 보이는 소스는 바로 숨기고 연결 해제"""
        pending = list(self._visible.items())
        for key, _ in pending:
            self.timers.cancel(key)
        self._visible.clear()
        async with self._lock:
            if self._client is None:
                return
            for _, item_id in pending:
                try:
                    await self._set_enabled(item_id, False)
                except Exception as e:
                    logger.warning("종료 중 OBS 소스 숨김 실패: %s", e)
            client, self._client = self._client, None
            try:
                await asyncio.to_thread(client.disconnect)
            except Exception as e:
                logger.debug("OBS 연결 해제 중 오류 무시: %s", e)
        logger.info("OBS WebSocket 연결 해제.")
