"""
Kick 채팅 명령어 → 방송 밈 오버레이 브리지.

- chat: Kick 채팅 수신 + 재연결 감독
- pipeline: 명령어 허용(디바운스) → 재생 큐 → 디스패치
- catalog: memes.json 밈 정의
- overlay: 설정/오버레이 서버와 중계 클라이언트
- obs: OBS WebSocket 디스패처
"""

__version__ = "0.1.0"
