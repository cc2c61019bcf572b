import json

from memebridge.chat import ChatParser
from memebridge.chat.chat_parser import CHAT_MESSAGE_EVENT, PUSHER_PING


def _chat_frame(content, **sender_overrides) -> str:
    sender = {
        "id": 123,
        "username": "viewer",
        "identity": {"color": "#FFFFFF", "badges": [{"type": "subscriber", "text": "Subscriber"}]},
    }
    sender.update(sender_overrides)
    data = {
        "id": "msg-1",
        "chatroom_id": 42,
        "content": content,
        "type": "message",
        "created_at": "2024-05-01T12:00:00+00:00",
        "sender": sender,
    }
    return json.dumps({"event": CHAT_MESSAGE_EVENT, "channel": "chatrooms.42.v2", "data": json.dumps(data)})


def test_parse_frame_decodes_nested_data_string() -> None:
    frame = ChatParser().parse_frame(_chat_frame("!wow"))

    assert frame.event == CHAT_MESSAGE_EVENT
    assert frame.channel == "chatrooms.42.v2"
    assert frame.data["content"] == "!wow"


def test_parse_frame_handles_bytes_and_garbage() -> None:
    parser = ChatParser()

    assert parser.parse_frame(b'{"event": "pusher:ping", "data": {}}').event == PUSHER_PING
    assert parser.parse_frame("not json") is None
    assert parser.parse_frame('{"data": {}}') is None
    assert parser.parse_frame("[1, 2]") is None


def test_parse_chat_builds_message() -> None:
    parser = ChatParser()
    frame = parser.parse_frame(_chat_frame("!nooo"))

    message = parser.parse_chat(frame, "somechannel")

    assert message.message == "!nooo"
    assert message.user == "viewer"
    assert message.user_id == "123"
    assert message.message_id == "msg-1"
    assert message.user_badge == "subscriber"
    assert message.channel_id == "somechannel"
    assert message.platform == "kick"
    assert message.timestamp.year == 2024


def test_parse_chat_ignores_other_events_and_missing_content() -> None:
    parser = ChatParser()

    assert parser.parse_chat(parser.parse_frame('{"event": "pusher:pong", "data": "{}"}'), "c") is None
    assert parser.parse_chat(parser.parse_frame(_chat_frame(None)), "c") is None


def test_parse_chat_without_badges() -> None:
    parser = ChatParser()
    frame = parser.parse_frame(_chat_frame("hi", identity={"badges": []}))

    assert parser.parse_chat(frame, "c").user_badge is None
