"""
밈 카탈로그: 채팅 명령어 → 오버레이 밈 정의
"""

from .models import (
    CatalogError,
    DuplicateMemeError,
    InvalidMemeError,
    MemeNotFoundError,
    TriggerDefinition,
    normalize_command,
)
from .store import DEFAULT_MEMES, MemeCatalog

__all__ = [
    "CatalogError",
    "DuplicateMemeError",
    "InvalidMemeError",
    "MemeNotFoundError",
    "TriggerDefinition",
    "normalize_command",
    "DEFAULT_MEMES",
    "MemeCatalog",
]
