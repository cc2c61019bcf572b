"""
방송 오버레이: 밈 설정 서버 + 스트림 매니저 ↔ 서버 중계.

- server: FastAPI + Socket.IO 서버 (python -m memebridge.overlay.server)
- relay_client: 스트림 매니저가 서버로 상태/트리거를 보내는 Socket.IO 클라이언트
- OBS에서 브라우저 소스 URL을 http://127.0.0.1:3000/overlays/memes 로 설정.
"""

from memebridge.overlay.state import new_overlay_state

__all__ = ["new_overlay_state"]
