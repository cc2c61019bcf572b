"""
스트림 매니저: Kick 채팅 수신 → 밈 명령어 허용/디바운스 → 재생 큐 → 오버레이 디스패치

.env에 KICK_CHANNEL 설정 후 실행 (서버 웹 UI의 토글 버튼으로도 시작/중지 가능).
실행: python -m memebridge.stream_manager  (프로젝트 루트에서)

- DISPATCH_MODE=relay (기본): 설정 서버(RELAY_URL)를 거쳐 브라우저 오버레이에 표시
- DISPATCH_MODE=obs: OBS WebSocket(OBS_HOST/OBS_PORT/OBS_PASSWORD)으로 OBS_SCENE_NAME 장면의 소스를 토글
- SIGINT/SIGTERM 시 타이머 취소 → 채팅 연결 해제 → 서버 연결 해제 순으로 종료
"""

import asyncio
import logging
import signal
from typing import Optional

from dotenv import load_dotenv

from memebridge.catalog import MemeCatalog
from memebridge.chat import ChatClientFactory, ChatMessage, ConnectionSupervisor
from memebridge.config import PROJECT_ROOT, Settings
from memebridge.obs import ObsOverlayDispatcher
from memebridge.overlay.relay_client import (
    RelayClient,
    RelayOverlayDispatcher,
    RelayStatusChannel,
)
from memebridge.pipeline import OverlayDispatcher, TimerRegistry, TriggerPipeline
from memebridge.utils import setup_logging

logger = logging.getLogger(__name__)


def build_dispatcher(settings: Settings, relay: RelayClient, timers: TimerRegistry) -> OverlayDispatcher:
    if settings.dispatch_mode == "obs":
        return ObsOverlayDispatcher(
            scene_name=settings.obs_scene_name,
            host=settings.obs_host,
            port=settings.obs_port,
            password=settings.obs_password,
            timers=timers,
        )
    return RelayOverlayDispatcher(relay)


async def run(settings: Settings, stop_event: Optional[asyncio.Event] = None) -> None:
    """stop_event 가 set 되거나 SIGINT/SIGTERM 을 받을 때까지 실행"""
    catalog = MemeCatalog(settings.memes_file)
    catalog.ensure_file()

    timers = TimerRegistry()
    relay = RelayClient(settings.relay_url, timers=timers)
    status = RelayStatusChannel(relay, forward_triggers=settings.dispatch_mode != "relay")
    pipeline = TriggerPipeline(
        build_dispatcher(settings, relay, timers),
        status,
        catalog=catalog.load(),
        debounce_ms=settings.debounce_ms,
        cooldown_ms=settings.global_cooldown_ms,
        queue_max=settings.queue_max,
    )
    relay.on_memes_updated = lambda: pipeline.load_catalog(catalog.load())

    def on_message(msg: ChatMessage):
        pipeline.handle_chat(msg.message)

    client = ChatClientFactory.create(
        platform="kick",
        channel_id=settings.kick_channel,
        chatroom_id=settings.kick_chatroom_id,
    )
    supervisor = ConnectionSupervisor(client, status, on_message=on_message, timers=timers)

    stop_event = stop_event if stop_event is not None else asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: Ctrl+C 는 asyncio.run 이 태스크 취소로 전달
            pass

    logger.info("Starting Kick Stream Manager (채널: %s)", settings.kick_channel)
    await relay.start()
    pipeline.start()
    supervisor.start()
    try:
        await stop_event.wait()
        logger.info("종료 신호 수신, 정리 중...")
    finally:
        await supervisor.stop()
        await pipeline.stop()
        timers.close()
        await relay.close()
        logger.info("Stream manager 종료")


def main() -> None:
    load_dotenv(PROJECT_ROOT / ".env")
    log_dir = setup_logging()
    settings = Settings.from_env()
    if not settings.kick_channel:
        print("❌ .env에 KICK_CHANNEL을 설정해주세요.")
        return
    print(f"채널: {settings.kick_channel}, 디스패치: {settings.dispatch_mode}")
    print(f"로그 저장 경로: {log_dir}")
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
