"""
채팅 클라이언트 추상 기본 클래스
플랫폼별 채팅 클라이언트가 구현해야 하는 인터페이스.
재연결은 클라이언트가 아니라 ConnectionSupervisor 가 담당한다.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


class ChatConnectionError(Exception):
    """채팅 연결/핸드셰이크/수신 오류"""


@dataclass
class ChatMessage:
    """채팅 메시지 데이터 클래스 (플랫폼 공통)"""
    user: str
    message: str
    timestamp: datetime
    channel_id: str
    platform: str  # 플랫폼 이름 (kick 등)
    message_id: Optional[str] = None
    user_id: Optional[str] = None
    user_badge: Optional[str] = None  # 구독자 배지 등


MessageCallback = Callable[[ChatMessage], Union[Awaitable[None], None]]


class ChatClient(ABC):
    """채팅 클라이언트 추상 기본 클래스"""

    def __init__(
        self,
        channel_id: str,
        on_message: Optional[MessageCallback] = None,
    ):
        """
        Args:
            channel_id: 채널 식별자 (플랫폼별 형식 다를 수 있음)
            on_message: 메시지 수신 시 호출할 콜백 함수
        """
        self.channel_id = channel_id
        self.on_message = on_message
        self.is_connected = False

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """플랫폼 이름 반환 (예: 'kick')"""
        pass

    @abstractmethod
    async def connect(self):
        """연결 + 채널 구독 완료까지 (핸드셰이크). 실패 시 예외."""
        pass

    @abstractmethod
    async def disconnect(self):
        """연결 종료. 이미 끊겼어도 예외 없이 반환해야 함."""
        pass

    @abstractmethod
    async def listen(self):
        """메시지 수신 루프. 원격이 정상 종료하면 반환, 오류면 예외."""
        pass

    async def _emit_message(self, message: ChatMessage) -> None:
        """on_message 호출 (동기/코루틴 모두 허용). 콜백 오류는 수신 루프를 끊지 않음."""
        if not self.on_message:
            return
        try:
            cb = self.on_message(message)
            if asyncio.iscoroutine(cb):
                await cb
        except Exception as e:
            logger.error(f"[{self.platform_name}] 메시지 콜백 오류: {e}", exc_info=True)
