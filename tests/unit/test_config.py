from pathlib import Path

import pytest

from memebridge.chat import ChatClientFactory, KickChatClient
from memebridge.config import Settings

_ENV_NAMES = (
    "KICK_CHANNEL",
    "CHANNEL_NAME",
    "KICK_CHATROOM_ID",
    "SERVER_HOST",
    "SERVER_PORT",
    "RELAY_URL",
    "MEMES_FILE",
    "DISPATCH_MODE",
    "MEME_QUEUE_MAX",
    "MEME_DEBOUNCE_MS",
    "MEME_COOLDOWN_MS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    settings = Settings.from_env()

    assert settings.kick_channel == ""
    assert settings.kick_chatroom_id is None
    assert settings.relay_url == "http://127.0.0.1:3000"
    assert settings.dispatch_mode == "relay"
    assert settings.queue_max == 50
    assert settings.debounce_ms == 10_000
    assert settings.global_cooldown_ms == 15_000


def test_env_overrides(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("CHANNEL_NAME", "somestreamer")
    clean_env.setenv("KICK_CHATROOM_ID", "98765")
    clean_env.setenv("SERVER_PORT", "4000")
    clean_env.setenv("MEMES_FILE", "/tmp/memes.json")
    clean_env.setenv("DISPATCH_MODE", "OBS")
    clean_env.setenv("MEME_QUEUE_MAX", "0")

    settings = Settings.from_env()

    assert settings.kick_channel == "somestreamer"
    assert settings.kick_chatroom_id == 98765
    assert settings.relay_url == "http://127.0.0.1:4000"
    assert settings.memes_file == Path("/tmp/memes.json")
    assert settings.dispatch_mode == "obs"
    assert settings.queue_max == 0


def test_invalid_values_are_rejected(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DISPATCH_MODE", "carrier-pigeon")
    with pytest.raises(ValueError):
        Settings.from_env()

    clean_env.setenv("DISPATCH_MODE", "relay")
    clean_env.setenv("MEME_COOLDOWN_MS", "soon")
    with pytest.raises(ValueError):
        Settings.from_env()


def test_factory_creates_kick_client() -> None:
    client = ChatClientFactory.create("kick", channel_id="somestreamer", chatroom_id=42)

    assert isinstance(client, KickChatClient)
    assert client.pusher_channel == "chatrooms.42.v2"
    assert "kick" in ChatClientFactory.get_supported_platforms()
    with pytest.raises(ValueError):
        ChatClientFactory.create("twitch", channel_id="x")
