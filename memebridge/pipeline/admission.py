"""
채팅 → 트리거 허용 판정.

명령어가 카탈로그에 있고, 같은 명령어의 마지막 허용 이후 debounce 간격이 지났을 때만 허용.
허용 시 해당 명령어의 ledger 항목만 갱신한다.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from ..catalog.models import TriggerDefinition, normalize_command
from ..config import DEBOUNCE_INTERVAL_MS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatEvent:
    """어드미션 입력 (처리 후 버림)"""
    raw_text: str
    received_at: float  # ms, 파이프라인 시계 기준


def index_catalog(memes: Iterable[TriggerDefinition]) -> dict[str, TriggerDefinition]:
    """정규화된 명령어 → 정의. 같은 키가 여러 번 나오면 처음 것 사용."""
    index: dict[str, TriggerDefinition] = {}
    for meme in memes:
        if meme.match_key in index:
            logger.warning("중복 명령어 무시: %s (%s)", meme.command, meme.namespace)
            continue
        index[meme.match_key] = meme
    return index


class CooldownLedger:
    """명령어별 마지막 허용 시각. 덮어쓰기만 하고 지우지 않는다 (카탈로그 리로드 때만 정리)."""

    def __init__(self):
        self._last: dict[str, float] = {}

    def last_admitted(self, command_key: str) -> Optional[float]:
        return self._last.get(command_key)

    def record(self, command_key: str, now: float) -> None:
        self._last[command_key] = now

    def retain(self, command_keys: Iterable[str]) -> None:
        """카탈로그에서 빠진 명령어 항목 제거"""
        keep = set(command_keys)
        for key in [k for k in self._last if k not in keep]:
            del self._last[key]

    def __contains__(self, command_key: str) -> bool:
        return command_key in self._last

    def __len__(self) -> int:
        return len(self._last)


class AdmissionFilter:
    """채팅 이벤트 하나를 받아 허용된 TriggerDefinition 또는 None 반환"""

    def __init__(self, ledger: CooldownLedger, debounce_ms: int = DEBOUNCE_INTERVAL_MS):
        self.ledger = ledger
        self.debounce_ms = debounce_ms
        self.debounced: Counter[str] = Counter()  # 진단용 카운터

    @staticmethod
    def match(text: str, catalog: Mapping[str, TriggerDefinition]) -> Optional[TriggerDefinition]:
        return catalog.get(normalize_command(text))

    def admit(
        self,
        event: ChatEvent,
        catalog: Mapping[str, TriggerDefinition],
    ) -> Optional[TriggerDefinition]:
        meme = self.match(event.raw_text, catalog)
        if meme is None:
            return None

        key = meme.match_key
        last = self.ledger.last_admitted(key)
        if last is not None and event.received_at - last < self.debounce_ms:
            self.debounced[key] += 1
            logger.info("Debounced: '%s' was used recently.", meme.command)
            return None

        self.ledger.record(key, event.received_at)
        return meme
