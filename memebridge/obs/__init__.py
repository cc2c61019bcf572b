"""OBS WebSocket 연동 (장면 아이템 토글 디스패처)"""
from .dispatcher import ObsOverlayDispatcher

__all__ = ["ObsOverlayDispatcher"]
