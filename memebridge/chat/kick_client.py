"""
Kick 채팅 클라이언트 (읽기 전용)

Kick 채팅은 Pusher 웹소켓으로 전달된다.
1) 채널 API 로 chatroom id 조회 (KICK_CHATROOM_ID 로 직접 지정 가능)
2) Pusher 웹소켓 연결 → connection_established 대기
3) chatrooms.<id>.v2 구독 → subscription_succeeded 대기 (여기까지가 핸드셰이크)
"""

import json
import logging
from typing import Optional

import httpx
import websockets
from websockets.exceptions import ConnectionClosedError

from .base_client import ChatClient, ChatConnectionError, MessageCallback
from .chat_parser import (
    CONNECTION_ESTABLISHED,
    PUSHER_ERROR,
    PUSHER_PING,
    SUBSCRIPTION_SUCCEEDED,
    ChatParser,
    PusherFrame,
)

logger = logging.getLogger(__name__)

KICK_API_BASE_URL = "https://kick.com/api/v2"
PUSHER_APP_KEY = "32cbd69e4b950bf97679"
PUSHER_URL = (
    f"wss://ws-us2.pusher.com/app/{PUSHER_APP_KEY}"
    "?protocol=7&client=js&version=8.4.0&flash=false"
)


class KickChatClient(ChatClient):
    """Kick Pusher 웹소켓 채팅 클라이언트"""

    @property
    def platform_name(self) -> str:
        """플랫폼 이름"""
        return "kick"

    def __init__(
        self,
        channel_id: str,
        chatroom_id: Optional[int] = None,
        on_message: Optional[MessageCallback] = None,
        api_base_url: str = KICK_API_BASE_URL,
        pusher_url: str = PUSHER_URL,
    ):
        """
        Args:
            channel_id: Kick 채널 슬러그 (예: "xqc")
            chatroom_id: 채팅방 ID (없으면 채널 API 로 조회)
            on_message: 메시지 수신 시 호출할 콜백 함수
        """
        super().__init__(channel_id, on_message)
        self.chatroom_id = chatroom_id
        self.api_base_url = api_base_url
        self.pusher_url = pusher_url
        self.parser = ChatParser(self.platform_name)
        self.ws = None

    @property
    def pusher_channel(self) -> str:
        return f"chatrooms.{self.chatroom_id}.v2"

    async def _resolve_chatroom_id(self) -> int:
        """채널 API 호출로 chatroom id 획득"""
        if self.chatroom_id:
            return self.chatroom_id
        async with httpx.AsyncClient(timeout=10.0, follow_redirects=True) as client:
            response = await client.get(
                f"{self.api_base_url}/channels/{self.channel_id}",
                headers={"Accept": "application/json", "User-Agent": "Mozilla/5.0"},
            )
            response.raise_for_status()
            data = response.json()
        chatroom = data.get("chatroom") if isinstance(data, dict) else None
        if not chatroom or chatroom.get("id") is None:
            raise ChatConnectionError(f"채널 응답에 chatroom id 없음: {self.channel_id}")
        self.chatroom_id = int(chatroom["id"])
        return self.chatroom_id

    async def _recv_frame(self) -> Optional[PusherFrame]:
        raw = await self.ws.recv()
        return self.parser.parse_frame(raw)

    async def _wait_for(self, event: str) -> PusherFrame:
        """핸드셰이크 중 특정 이벤트가 올 때까지 프레임 소비"""
        while True:
            frame = await self._recv_frame()
            if frame is None:
                continue
            if frame.event == PUSHER_ERROR:
                raise ChatConnectionError(f"Pusher 오류: {frame.data}")
            if frame.event == event:
                return frame

    async def _send(self, event: str, data: dict) -> None:
        await self.ws.send(json.dumps({"event": event, "data": data}))

    async def connect(self):
        """웹소켓 연결 + 채팅방 구독"""
        try:
            chatroom_id = await self._resolve_chatroom_id()
            logger.info(f"[{self.platform_name}] chatroom id: {chatroom_id}")

            self.ws = await websockets.connect(self.pusher_url)
            await self._wait_for(CONNECTION_ESTABLISHED)

            await self._send("pusher:subscribe", {"auth": "", "channel": self.pusher_channel})
            await self._wait_for(SUBSCRIPTION_SUCCEEDED)

            self.is_connected = True
            logger.info(f"[{self.platform_name}] 채팅방 구독 완료: {self.pusher_channel}")
        except Exception as e:
            logger.error(f"[{self.platform_name}] 연결 실패: {e}")
            self.is_connected = False
            await self.disconnect()
            raise

    async def disconnect(self):
        """웹소켓 연결 종료"""
        ws, self.ws = self.ws, None
        self.is_connected = False
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"[{self.platform_name}] 연결 종료 중 오류 무시: {e}")
            logger.info(f"[{self.platform_name}] 웹소켓 연결 종료")

    async def listen(self):
        """메시지 수신 루프. 정상 종료(close)면 반환, 비정상 종료/오류면 예외."""
        if self.ws is None:
            raise ChatConnectionError("연결되지 않음")
        ws = self.ws
        try:
            async for raw in ws:
                frame = self.parser.parse_frame(raw)
                if frame is None:
                    continue
                if frame.event == PUSHER_PING:
                    await self._send("pusher:pong", {})
                    continue
                if frame.event == PUSHER_ERROR:
                    raise ChatConnectionError(f"Pusher 오류: {frame.data}")
                message = self.parser.parse_chat(frame, self.channel_id)
                if message is not None:
                    await self._emit_message(message)
        except ConnectionClosedError as e:
            raise ChatConnectionError(f"웹소켓 비정상 종료: {e}") from e
        finally:
            self.is_connected = False
        logger.warning(f"[{self.platform_name}] 웹소켓 연결 종료됨")
