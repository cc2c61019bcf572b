"""
밈 설정/오버레이 서버. FastAPI(REST + 페이지) + Socket.IO(중계).

- /api/memes            : 밈 CRUD (변경 시 memes_updated 브로드캐스트 → 스트림 매니저 리로드)
- /file/<path>          : MEDIA_DIR 아래 미디어 파일
- /overlays/memes       : OBS 브라우저 소스용 오버레이 (trigger_meme 수신 → duration 동안 표시)
- /api/stream-manager/* : 스트림 매니저 프로세스 상태/토글
- Socket.IO            : 스트림 매니저가 보낸 trigger_meme / connection_status / queue_update 중계

실행: python -m memebridge.overlay.server  (프로젝트 루트에서)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional, Union

import socketio
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from ..catalog import (
    DuplicateMemeError,
    InvalidMemeError,
    MemeCatalog,
    MemeNotFoundError,
)
from ..config import PROJECT_ROOT, Settings
from ..utils import setup_logging
from .process import StreamManagerProcess
from .state import new_overlay_state

logger = logging.getLogger(__name__)

_PUBLIC_DIR = PROJECT_ROOT / "public"

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".gif": "image/gif",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".aac": "audio/aac",
}

# 스트림 매니저 → 서버 → 다른 모든 소켓으로 그대로 중계하는 이벤트
RELAYED_EVENTS = ("trigger_meme", "connection_status", "queue_update")


class MemeIn(BaseModel):
    """POST/PUT 본문 (memes.json 레코드 형식)"""
    namespace: Optional[str] = None
    command: Optional[str] = None
    filePath: Optional[str] = None
    duration: Optional[Union[int, str]] = None
    sourceName: Optional[str] = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(
    catalog: MemeCatalog,
    media_dir: Path,
    manager: Optional[StreamManagerProcess] = None,
    state: Optional[dict[str, Any]] = None,
) -> FastAPI:
    """FastAPI 앱 생성. Socket.IO 서버는 app.state.sio, ASGI 진입점은 build_asgi_app()."""
    manager = manager or StreamManagerProcess()
    state = state if state is not None else new_overlay_state()
    media_root = Path(media_dir).resolve()
    sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        catalog.ensure_file()
        yield
        if manager.running:
            await manager.stop()

    app = FastAPI(title="Meme Bridge", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.sio = sio
    app.state.catalog = catalog
    app.state.manager = manager
    app.state.overlay_state = state
    if _PUBLIC_DIR.is_dir():
        app.mount("/static", StaticFiles(directory=str(_PUBLIC_DIR)), name="public")

    async def notify_memes_updated() -> None:
        await sio.emit("memes_updated", {})
        logger.info("밈 설정 변경 알림 전송")

    # ---- Socket.IO ----

    @sio.event
    async def connect(sid, environ, auth=None):
        logger.info("소켓 연결: %s (%s)", sid, environ.get("REMOTE_ADDR"))
        await sio.emit("connected", {"message": "Connected to meme overlay server"}, to=sid)
        if state.get("connection_status"):
            await sio.emit("connection_status", state["connection_status"], to=sid)
        await sio.emit("queue_update", {"queueSize": state.get("queue_size", 0)}, to=sid)

    @sio.event
    async def disconnect(sid, *args):
        logger.info("소켓 연결 종료: %s", sid)

    def _make_relay(event: str):
        async def relay(sid, data):
            if not isinstance(data, dict):
                logger.warning("잘못된 %s 페이로드 무시: %r", event, data)
                return
            if event == "connection_status":
                state["connection_status"] = data
                logger.info(
                    "Broadcasting connection status: %s%s",
                    data.get("status"),
                    f" - {data['details']}" if data.get("details") else "",
                )
            elif event == "queue_update":
                state["queue_size"] = int(data.get("queueSize") or 0)
            elif event == "trigger_meme":
                state["last_trigger"] = data.get("meme")
                logger.info("Triggered meme '%s' to overlays", (data.get("meme") or {}).get("namespace"))
            await sio.emit(event, data, skip_sid=sid)
        return relay

    for _event in RELAYED_EVENTS:
        sio.on(_event, _make_relay(_event))

    # ---- 밈 CRUD ----

    @app.get("/api/memes")
    def list_memes():
        return JSONResponse([m.to_dict() for m in catalog.list()])

    @app.get("/api/memes/{namespace}")
    def get_meme(namespace: str):
        try:
            return JSONResponse(catalog.get(namespace).to_dict())
        except MemeNotFoundError as e:
            return _error(str(e), 404)

    @app.post("/api/memes")
    async def create_meme(body: MemeIn):
        try:
            meme = catalog.create(body.model_dump(exclude_none=True))
        except (InvalidMemeError, DuplicateMemeError) as e:
            return _error(str(e), 400)
        except OSError as e:
            logger.error("밈 저장 실패: %s", e)
            return _error("Failed to save meme", 500)
        await notify_memes_updated()
        return JSONResponse(meme.to_dict(), status_code=201)

    @app.put("/api/memes/{namespace}")
    async def update_meme(namespace: str, body: MemeIn):
        data = body.model_dump(exclude_none=True)
        data.pop("namespace", None)
        try:
            meme = catalog.update(namespace, data)
        except MemeNotFoundError as e:
            return _error(str(e), 404)
        except (InvalidMemeError, DuplicateMemeError) as e:
            return _error(str(e), 400)
        except OSError as e:
            logger.error("밈 저장 실패: %s", e)
            return _error("Failed to save meme", 500)
        await notify_memes_updated()
        return JSONResponse(meme.to_dict())

    @app.delete("/api/memes/{namespace}")
    async def delete_meme(namespace: str):
        try:
            catalog.delete(namespace)
        except MemeNotFoundError as e:
            return _error(str(e), 404)
        except OSError as e:
            logger.error("밈 삭제 실패: %s", e)
            return _error("Failed to delete meme", 500)
        await notify_memes_updated()
        return Response(status_code=204)

    # ---- 미디어 파일 ----

    @app.get("/file/{file_path:path}")
    def serve_file(file_path: str):
        """MEDIA_DIR 기준 상대 경로만 허용 (바깥으로 나가는 경로는 400)"""
        target = (media_root / file_path).resolve()
        if not target.is_relative_to(media_root):
            logger.warning("미디어 디렉터리 밖 경로 요청 거절: %s", file_path)
            return _error("Invalid file path", 400)
        if not target.is_file():
            logger.error("File not found: %s", target)
            return _error(f"File not found: {file_path}", 404)
        return FileResponse(str(target), media_type=CONTENT_TYPES.get(target.suffix.lower()))

    # ---- 상태 / 스트림 매니저 ----

    @app.get("/api/state")
    def get_state():
        return JSONResponse({
            "connection_status": state.get("connection_status"),
            "queue_size": state.get("queue_size", 0),
            "last_trigger": state.get("last_trigger"),
        })

    @app.get("/api/stream-manager/status")
    def stream_manager_status():
        return JSONResponse(manager.status())

    @app.post("/api/stream-manager/toggle")
    async def stream_manager_toggle():
        try:
            return JSONResponse(await manager.toggle())
        except OSError as e:
            logger.error("Error toggling stream manager: %s", e)
            return _error("Failed to toggle stream manager", 500)

    # ---- 페이지 ----

    @app.get("/", response_class=HTMLResponse)
    def index_page():
        index = _PUBLIC_DIR / "index.html"
        if index.is_file():
            return HTMLResponse(index.read_text(encoding="utf-8"))
        return HTMLResponse(MANAGER_HTML)

    @app.get("/overlays/memes", response_class=HTMLResponse)
    def meme_overlay_page():
        """OBS 브라우저 소스 URL: http://127.0.0.1:3000/overlays/memes"""
        return HTMLResponse(OVERLAY_HTML)

    return app


def build_asgi_app(app: FastAPI) -> socketio.ASGIApp:
    """Socket.IO(/socket.io) + FastAPI 를 하나의 ASGI 앱으로"""
    return socketio.ASGIApp(app.state.sio, other_asgi_app=app)


OVERLAY_HTML = """<!DOCTYPE html>
<html lang="ko">
<head>
  <meta charset="UTF-8">
  <title>Meme Overlay</title>
  <script src="https://cdn.socket.io/4.7.5/socket.io.min.js"></script>
  <style>
    html, body { margin: 0; padding: 0; width: 100vw; height: 100vh; background: transparent; overflow: hidden; }
    #stage { position: absolute; inset: 0; display: flex; align-items: center; justify-content: center; }
    #stage img, #stage video { max-width: 100%; max-height: 100%; }
  </style>
</head>
<body>
  <div id="stage"></div>
  <script>
    var VIDEO = /\\.(mp4|webm|mov|avi|mkv)$/i;
    var AUDIO = /\\.(mp3|wav|ogg|aac)$/i;
    var stage = document.getElementById("stage");
    var socket = io();

    function show(meme) {
      var src = "/file/" + encodeURIComponent(meme.filePath).replace(/%2F/g, "/");
      var el;
      if (VIDEO.test(meme.filePath)) {
        el = document.createElement("video");
        el.autoplay = true;
      } else if (AUDIO.test(meme.filePath)) {
        el = document.createElement("audio");
        el.autoplay = true;
      } else {
        el = document.createElement("img");
      }
      el.src = src;
      stage.appendChild(el);
      // 트리거마다 자기 자신만 duration 후 제거
      setTimeout(function() {
        if (el.parentNode) el.parentNode.removeChild(el);
      }, meme.duration);
    }

    socket.on("trigger_meme", function(data) {
      if (data && data.meme) show(data.meme);
    });
  </script>
</body>
</html>
"""

MANAGER_HTML = """<!DOCTYPE html>
<html lang="ko">
<head>
  <meta charset="UTF-8">
  <title>Meme Bridge</title>
  <script src="https://cdn.socket.io/4.7.5/socket.io.min.js"></script>
  <style>
    body { font-family: sans-serif; margin: 24px; }
    table { border-collapse: collapse; }
    td, th { border: 1px solid #ccc; padding: 4px 8px; }
    #status { margin-bottom: 12px; }
  </style>
</head>
<body>
  <div id="status">연결 상태: <b id="conn">-</b> / 큐: <b id="queue">0</b>
    <button id="toggle">스트림 매니저 시작/중지</button></div>
  <table id="memes"><thead><tr><th>namespace</th><th>command</th><th>file</th><th>duration(ms)</th></tr></thead><tbody></tbody></table>
  <script>
    function esc(t) { return String(t == null ? "" : t).replace(/[&<>"']/g, function(c) { return "&#" + c.charCodeAt(0) + ";"; }); }
    function loadMemes() {
      fetch("/api/memes").then(function(r) { return r.json(); }).then(function(list) {
        document.querySelector("#memes tbody").innerHTML = list.map(function(m) {
          return "<tr><td>" + esc(m.namespace) + "</td><td>" + esc(m.command) + "</td><td>" + esc(m.filePath) + "</td><td>" + esc(m.duration) + "</td></tr>";
        }).join("");
      });
    }
    var socket = io();
    socket.on("connection_status", function(s) {
      document.getElementById("conn").innerText = s.status + (s.details ? " - " + s.details : "");
    });
    socket.on("queue_update", function(q) { document.getElementById("queue").innerText = q.queueSize; });
    socket.on("memes_updated", loadMemes);
    document.getElementById("toggle").onclick = function() { fetch("/api/stream-manager/toggle", { method: "POST" }); };
    loadMemes();
  </script>
</body>
</html>
"""


def main() -> None:
    load_dotenv(PROJECT_ROOT / ".env")
    log_dir = setup_logging()
    settings = Settings.from_env()
    catalog = MemeCatalog(settings.memes_file)
    app = create_app(catalog, settings.media_dir)
    print(f"Meme Bridge 서버: http://{settings.server_host}:{settings.server_port}")
    print(f"밈 오버레이 (OBS 브라우저 소스): http://{settings.server_host}:{settings.server_port}/overlays/memes")
    print(f"로그 저장 경로: {log_dir}")
    uvicorn.run(
        build_asgi_app(app),
        host=settings.server_host,
        port=settings.server_port,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
