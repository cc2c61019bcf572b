"""
트리거 파이프라인: 채팅 명령어 허용(디바운스) → 재생 큐 → 오버레이 디스패치
"""

from .admission import AdmissionFilter, ChatEvent, CooldownLedger, index_catalog
from .dispatcher import DispatchError, OverlayDispatcher
from .pipeline import TriggerPipeline
from .playback import PlaybackQueue, PlaybackScheduler
from .status import ConnectionStatus, LoggingStatusChannel, StatusChannel
from .timers import TimerRegistry, monotonic_ms

__all__ = [
    "AdmissionFilter",
    "ChatEvent",
    "CooldownLedger",
    "index_catalog",
    "DispatchError",
    "OverlayDispatcher",
    "TriggerPipeline",
    "PlaybackQueue",
    "PlaybackScheduler",
    "ConnectionStatus",
    "LoggingStatusChannel",
    "StatusChannel",
    "TimerRegistry",
    "monotonic_ms",
]
