"""
환경변수(.env) 기반 설정.

엔트리 포인트에서 load_dotenv() 후 Settings.from_env() 로 한 번 읽어 각 컴포넌트에 넘긴다.
타이밍 상수는 ms 단위.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# 파이프라인 기본값
DEBOUNCE_INTERVAL_MS = 10_000
GLOBAL_COOLDOWN_MS = 15_000
QUEUE_TICK_MS = 1_000
DEFAULT_QUEUE_MAX = 50

# 재연결 기본값
RECONNECT_BASE_DELAY_MS = 1_000
RECONNECT_MAX_DELAY_MS = 300_000
RECONNECT_MAX_ATTEMPTS = 10
RECONNECT_JITTER_MS = 1_000
HANDSHAKE_TIMEOUT_MS = 30_000
STALE_AFTER_MS = 300_000
STALE_CHECK_INTERVAL_MS = 60_000


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} 는 정수여야 합니다: {raw!r}") from None


@dataclass
class Settings:
    """프로세스 설정 (서버 / 스트림 매니저 공용)"""
    kick_channel: str = ""
    kick_chatroom_id: Optional[int] = None  # 채널 조회 API가 막힐 때 직접 지정
    server_host: str = "127.0.0.1"
    server_port: int = 3000
    relay_url: str = "http://127.0.0.1:3000"
    memes_file: Path = PROJECT_ROOT / "memes.json"
    media_dir: Path = PROJECT_ROOT / "public" / "memes"
    dispatch_mode: str = "relay"  # "relay" | "obs"
    obs_host: str = "localhost"
    obs_port: int = 4455
    obs_password: str = ""
    obs_scene_name: str = "Game Scene"
    queue_max: int = DEFAULT_QUEUE_MAX
    debounce_ms: int = DEBOUNCE_INTERVAL_MS
    global_cooldown_ms: int = GLOBAL_COOLDOWN_MS

    @classmethod
    def from_env(cls) -> "Settings":
        port = _env_int("SERVER_PORT", 3000)
        host = os.getenv("SERVER_HOST", "127.0.0.1")
        chatroom = os.getenv("KICK_CHATROOM_ID")
        mode = (os.getenv("DISPATCH_MODE") or "relay").strip().lower()
        if mode not in ("relay", "obs"):
            raise ValueError(f"DISPATCH_MODE 는 relay 또는 obs 여야 합니다: {mode!r}")
        return cls(
            kick_channel=os.getenv("KICK_CHANNEL") or os.getenv("CHANNEL_NAME", ""),
            kick_chatroom_id=int(chatroom) if chatroom else None,
            server_host=host,
            server_port=port,
            relay_url=os.getenv("RELAY_URL") or f"http://{host}:{port}",
            memes_file=Path(os.getenv("MEMES_FILE") or PROJECT_ROOT / "memes.json"),
            media_dir=Path(os.getenv("MEDIA_DIR") or PROJECT_ROOT / "public" / "memes"),
            dispatch_mode=mode,
            obs_host=os.getenv("OBS_HOST", "localhost"),
            obs_port=_env_int("OBS_PORT", 4455),
            obs_password=os.getenv("OBS_PASSWORD", ""),
            obs_scene_name=os.getenv("OBS_SCENE_NAME", "Game Scene"),
            queue_max=_env_int("MEME_QUEUE_MAX", DEFAULT_QUEUE_MAX),
            debounce_ms=_env_int("MEME_DEBOUNCE_MS", DEBOUNCE_INTERVAL_MS),
            global_cooldown_ms=_env_int("MEME_COOLDOWN_MS", GLOBAL_COOLDOWN_MS),
        )
