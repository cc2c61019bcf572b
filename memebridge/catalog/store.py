"""
memes.json 기반 밈 카탈로그 (CRUD + 핫 리로드용 로드).

서버는 매 요청마다 파일을 다시 읽고(load), 스트림 매니저는 memes_updated 알림을 받으면
load() 결과로 파이프라인 카탈로그를 교체한다.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Union

from .models import (
    DuplicateMemeError,
    InvalidMemeError,
    MemeNotFoundError,
    TriggerDefinition,
)

logger = logging.getLogger(__name__)

DEFAULT_MEMES: List[dict] = [
    {"namespace": "emodmg", "command": "!emodmg", "filePath": "emodmg.gif", "duration": 5000},
    {"namespace": "godno", "command": "!nooo", "filePath": "godno.gif", "duration": 10000},
]


def default_memes() -> List[TriggerDefinition]:
    return [TriggerDefinition.from_dict(d) for d in DEFAULT_MEMES]


class MemeCatalog:
    """JSON 파일 하나에 밈 목록을 저장하는 카탈로그"""

    def __init__(self, path: Union[Path, str]):
        self.path = Path(path)

    def ensure_file(self) -> None:
        """파일이 없으면 기본 밈으로 생성"""
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write(default_memes())
        logger.info("기본 밈으로 %s 생성", self.path)

    def load(self) -> List[TriggerDefinition]:
        """파일에서 밈 목록 로드. 읽기/파싱 실패 시 기본 밈 반환."""
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("밈 설정 로드 실패 (%s), 기본 밈 사용: %s", self.path, e)
            return default_memes()
        if not isinstance(raw, list):
            logger.error("밈 설정 형식 오류 (배열 아님), 기본 밈 사용: %s", self.path)
            return default_memes()
        memes: List[TriggerDefinition] = []
        for item in raw:
            try:
                memes.append(TriggerDefinition.from_dict(item))
            except InvalidMemeError as e:
                logger.warning("잘못된 밈 레코드 무시: %s (%s)", item, e)
        return memes

    def _write(self, memes: Iterable[TriggerDefinition]) -> None:
        data = [m.to_dict() for m in memes]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def list(self) -> List[TriggerDefinition]:
        return self.load()

    def get(self, namespace: str) -> TriggerDefinition:
        for meme in self.load():
            if meme.namespace == namespace:
                return meme
        raise MemeNotFoundError("Meme not found")

    def create(self, data: dict[str, Any]) -> TriggerDefinition:
        meme = TriggerDefinition.from_dict(data)
        memes = self.load()
        if any(m.namespace == meme.namespace for m in memes):
            raise DuplicateMemeError("Namespace already exists")
        if any(m.match_key == meme.match_key for m in memes):
            raise DuplicateMemeError("Command already exists")
        memes.append(meme)
        self._write(memes)
        logger.info("밈 추가: %s (%s)", meme.namespace, meme.command)
        return meme

    def update(self, namespace: str, data: dict[str, Any]) -> TriggerDefinition:
        """namespace 는 바꿀 수 없음. 빠진 필드는 기존 값 유지."""
        memes = self.load()
        index = self._index_of(memes, namespace)
        merged = {**memes[index].to_dict(), **{k: v for k, v in data.items() if v is not None}}
        merged["namespace"] = namespace
        updated = TriggerDefinition.from_dict(merged)
        if any(m.match_key == updated.match_key and m.namespace != namespace for m in memes):
            raise DuplicateMemeError("Command already exists")
        memes[index] = updated
        self._write(memes)
        logger.info("밈 수정: %s", namespace)
        return updated

    def delete(self, namespace: str) -> None:
        memes = self.load()
        index = self._index_of(memes, namespace)
        memes.pop(index)
        self._write(memes)
        logger.info("밈 삭제: %s", namespace)

    @staticmethod
    def _index_of(memes: List[TriggerDefinition], namespace: str) -> int:
        for i, m in enumerate(memes):
            if m.namespace == namespace:
                return i
        raise MemeNotFoundError("Meme not found")
