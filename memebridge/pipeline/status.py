"""상태 알림 채널: 연결 상태 / 큐 길이 / 재생된 밈을 관찰자에게 전달 (fire-and-forget)."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..catalog.models import TriggerDefinition

logger = logging.getLogger(__name__)


@dataclass
class ConnectionStatus:
    """connection_status 알림 본문"""
    status: str
    details: Optional[str] = None
    reconnect_attempts: int = 0
    next_retry_in: Optional[int] = None  # 초 단위, 대기 중인 재시도 없으면 None
    timestamp: float = field(default_factory=lambda: time.time() * 1000)

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "details": self.details,
            "reconnectAttempts": self.reconnect_attempts,
            "nextRetryIn": self.next_retry_in,
            "timestamp": int(self.timestamp),
        }


class StatusChannel(ABC):
    """파이프라인 → 관찰자 알림. 구현체는 예외를 밖으로 던지지 않는다."""

    @abstractmethod
    def connection_status(self, status: ConnectionStatus) -> None:
        pass

    @abstractmethod
    def queue_update(self, queue_size: int) -> None:
        pass

    @abstractmethod
    def trigger_meme(self, meme: TriggerDefinition) -> None:
        """디스패처가 밈을 보여준 직후"""
        pass


class LoggingStatusChannel(StatusChannel):
    """릴레이 서버 없이 실행할 때: 로그로만 남김"""

    def connection_status(self, status: ConnectionStatus) -> None:
        logger.info(
            "연결 상태: %s%s (시도 %d, 다음 재시도 %s초)",
            status.status,
            f" - {status.details}" if status.details else "",
            status.reconnect_attempts,
            status.next_retry_in,
        )

    def queue_update(self, queue_size: int) -> None:
        logger.info("큐 길이: %d", queue_size)

    def trigger_meme(self, meme: TriggerDefinition) -> None:
        logger.info("밈 재생: %s (%dms)", meme.namespace, meme.duration_ms)
