"""
스트림 매니저 프로세스 시작/중지 (웹 UI 토글 버튼용).
자식 프로세스 stdout/stderr 는 서버 로그로 옮겨 적는다.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import PROJECT_ROOT

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SEC = 10.0


class StreamManagerProcess:
    """python -m memebridge.stream_manager 자식 프로세스 하나를 관리"""

    def __init__(self, command: Optional[Sequence[str]] = None, cwd: Optional[Path] = None):
        self.command: List[str] = list(command or [sys.executable, "-m", "memebridge.stream_manager"])
        self.cwd = Path(cwd) if cwd else PROJECT_ROOT
        self.proc: Optional[asyncio.subprocess.Process] = None
        self._watchers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self.proc is not None and self.proc.returncode is None

    @property
    def pid(self) -> Optional[int]:
        return self.proc.pid if self.running else None

    def status(self) -> dict:
        return {"running": self.running, "pid": self.pid}

    async def start(self) -> dict:
        if self.running:
            return self.status()
        self.proc = await asyncio.create_subprocess_exec(
            *self.command,
            cwd=str(self.cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        proc = self.proc
        self._watchers = [
            asyncio.create_task(self._pump(proc.stdout, logging.INFO, "[Stream Manager]")),
            asyncio.create_task(self._pump(proc.stderr, logging.ERROR, "[Stream Manager Error]")),
            asyncio.create_task(self._wait(proc)),
        ]
        logger.info("Stream manager started with PID: %s", proc.pid)
        return self.status()

    async def stop(self) -> dict:
        proc = self.proc
        if proc is None or proc.returncode is not None:
            self.proc = None
            return self.status()
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=STOP_TIMEOUT_SEC)
        except asyncio.TimeoutError:
            logger.warning("Stream manager가 %g초 안에 종료되지 않아 강제 종료", STOP_TIMEOUT_SEC)
            proc.kill()
            await proc.wait()
        await asyncio.gather(*self._watchers, return_exceptions=True)
        self._watchers = []
        self.proc = None
        logger.info("Stream manager stopped")
        return self.status()

    async def toggle(self) -> dict:
        if self.running:
            return await self.stop()
        return await self.start()

    async def _pump(self, stream: Optional[asyncio.StreamReader], level: int, prefix: str) -> None:
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                break
            logger.log(level, "%s %s", prefix, line.decode("utf-8", errors="replace").rstrip())

    async def _wait(self, proc: asyncio.subprocess.Process) -> None:
        code = await proc.wait()
        logger.info("Stream manager exited with code %s", code)
        if self.proc is proc:
            self.proc = None
