"""
채팅 수집 모듈
Kick 채팅을 수집하고 연결 상태(재연결)를 관리하는 모듈
"""

from .base_client import ChatClient, ChatConnectionError, ChatMessage
from .chat_parser import ChatParser, PusherFrame
from .client_factory import ChatClientFactory
from .kick_client import KickChatClient
from .supervisor import ConnectionState, ConnectionSupervisor, ReconnectPolicy

__all__ = [
    "ChatClient",
    "ChatConnectionError",
    "ChatMessage",
    "ChatParser",
    "PusherFrame",
    "ChatClientFactory",
    "KickChatClient",
    "ConnectionState",
    "ConnectionSupervisor",
    "ReconnectPolicy",
]
