"""서버 측 공유 상태. 스트림 매니저가 보낸 마지막 알림을 보관해 새로 접속한 페이지에 바로 보여준다."""

from typing import Any


def new_overlay_state() -> dict[str, Any]:
    # connection_status: 마지막 connection_status 페이로드 (없으면 None)
    # queue_size: 마지막 queue_update 의 queueSize
    # last_trigger: 마지막으로 중계한 밈 {"namespace", "command", "filePath", "duration"}
    return {
        "connection_status": None,
        "queue_size": 0,
        "last_trigger": None,
    }
