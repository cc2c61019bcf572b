"""오버레이 디스패처 경계: 밈을 보여주고 duration 후 숨기는 쪽 (릴레이 서버 / OBS)."""

from abc import ABC, abstractmethod

from ..catalog.models import TriggerDefinition


class DispatchError(Exception):
    """디스패처에 전달 실패 (연결 없음 등). 해당 밈은 버려진다."""


class OverlayDispatcher(ABC):
    """show_then_hide 는 보이기까지만 기다리고, 숨김은 디스패처가 알아서 처리."""

    @abstractmethod
    async def show_then_hide(self, meme: TriggerDefinition) -> None:
        pass

    async def close(self) -> None:
        """대기 중인 숨김 타이머 등 정리"""
        return None
