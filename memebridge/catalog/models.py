"""
밈 카탈로그 데이터 모델.
memes.json 레코드: {"namespace", "command", "filePath", "duration"[, "sourceName"]}
"""

from dataclasses import dataclass
from typing import Any, Optional


class CatalogError(Exception):
    """카탈로그 CRUD 오류 기본 클래스"""


class InvalidMemeError(CatalogError):
    """필수 필드 누락 / 형식 오류"""


class DuplicateMemeError(CatalogError):
    """namespace 또는 command 중복"""


class MemeNotFoundError(CatalogError):
    """해당 namespace 없음"""


def normalize_command(text: str) -> str:
    """명령어 비교 키: 앞뒤 공백 제거 + 대소문자 무시"""
    return (text or "").strip().casefold()


@dataclass(frozen=True)
class TriggerDefinition:
    """채팅 명령어 하나에 대응하는 밈 정의 (코어에서는 값으로만 취급)"""
    namespace: str
    command: str
    asset_ref: str  # 오버레이가 불러올 파일 경로 (memes.json 의 filePath)
    duration_ms: int
    source_name: Optional[str] = None  # OBS 소스 이름 (없으면 "<namespace>_meme")

    @property
    def match_key(self) -> str:
        return normalize_command(self.command)

    @property
    def obs_source_name(self) -> str:
        return self.source_name or f"{self.namespace}_meme"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TriggerDefinition":
        """memes.json 레코드 → TriggerDefinition. 형식 오류는 InvalidMemeError."""
        if not isinstance(data, dict):
            raise InvalidMemeError(f"밈 레코드는 객체여야 합니다: {data!r}")
        namespace = str(data.get("namespace") or "").strip()
        command = str(data.get("command") or "").strip()
        file_path = str(data.get("filePath") or "").strip()
        duration = data.get("duration")
        if not namespace or not command or not file_path or duration in (None, ""):
            raise InvalidMemeError("All fields are required")
        try:
            duration_ms = int(duration)
        except (TypeError, ValueError):
            raise InvalidMemeError(f"duration 은 정수여야 합니다: {duration!r}") from None
        if duration_ms <= 0:
            raise InvalidMemeError(f"duration 은 양수여야 합니다: {duration_ms}")
        return cls(
            namespace=namespace,
            command=command,
            asset_ref=file_path,
            duration_ms=duration_ms,
            source_name=data.get("sourceName") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "namespace": self.namespace,
            "command": self.command,
            "filePath": self.asset_ref,
            "duration": self.duration_ms,
        }
        if self.source_name:
            out["sourceName"] = self.source_name
        return out
