"""
Kick(Pusher) 웹소켓 프레임 파싱

Pusher 프레임: {"event": str, "channel": str?, "data": <JSON 문자열 또는 객체>}
채팅 이벤트: App\\Events\\ChatMessageEvent (data.content, data.sender.username ...)
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from .base_client import ChatMessage

logger = logging.getLogger(__name__)

CHAT_MESSAGE_EVENT = "App\\Events\\ChatMessageEvent"
CONNECTION_ESTABLISHED = "pusher:connection_established"
SUBSCRIPTION_SUCCEEDED = "pusher_internal:subscription_succeeded"
PUSHER_PING = "pusher:ping"
PUSHER_ERROR = "pusher:error"


@dataclass
class PusherFrame:
    """디코딩된 Pusher 프레임"""
    event: str
    data: Any = None
    channel: Optional[str] = None


class ChatParser:
    """Pusher 프레임 → PusherFrame / ChatMessage"""

    def __init__(self, platform: str = "kick"):
        self.platform = platform

    def parse_frame(self, raw: Union[str, bytes]) -> Optional[PusherFrame]:
        """
        원시 웹소켓 메시지를 PusherFrame 으로 변환

        Returns:
            PusherFrame 또는 None (JSON 아님 / event 없음)
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"[{self.platform}] non-JSON 프레임: {raw[:100]}")
            return None
        if not isinstance(payload, dict) or not payload.get("event"):
            return None

        data = payload.get("data")
        # Pusher 는 data 를 한 번 더 JSON 문자열로 감싸 보냄
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                pass
        return PusherFrame(event=payload["event"], data=data, channel=payload.get("channel"))

    def parse_chat(self, frame: PusherFrame, channel_id: str) -> Optional[ChatMessage]:
        """ChatMessageEvent 프레임 → ChatMessage. 다른 이벤트거나 content 없으면 None."""
        if frame.event != CHAT_MESSAGE_EVENT or not isinstance(frame.data, dict):
            return None
        data = frame.data
        content = data.get("content")
        if not isinstance(content, str):
            return None

        sender = data.get("sender") or {}
        identity = sender.get("identity") or {}
        badges = identity.get("badges") or []
        badge = badges[0].get("type") if badges and isinstance(badges[0], dict) else None

        return ChatMessage(
            user=str(sender.get("username") or ""),
            message=content,
            timestamp=self._parse_time(data.get("created_at")),
            channel_id=channel_id,
            platform=self.platform,
            message_id=str(data["id"]) if data.get("id") is not None else None,
            user_id=str(sender["id"]) if sender.get("id") is not None else None,
            user_badge=badge,
        )

    @staticmethod
    def _parse_time(value: Any) -> datetime:
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                pass
        return datetime.now()
