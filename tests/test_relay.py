import json

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from chathub.exceptions import InvalidArgument, StoreError
from chathub.repositories.file_repository import FileRepository, get_file_type
from chathub.repositories.message_repository import MessageRepository
from chathub.schemas.message import ChatMessageIn
from chathub.services.relay import MessageRelay, parse_reply


async def join(conn_manager, connect, username, room):
    connection, websocket = await connect(conn_manager, username)
    conn_manager.add_to_room(connection, room)
    return connection, websocket


@pytest.mark.parametrize("payload", [
    {"room": "general", "text": "hi"},
    {"username": "alice", "text": "hi"},
    {"username": "alice", "room": "general", "type": "file"},
    {"username": "alice", "room": "general", "text": ""},
    {"username": "alice", "room": "general"},
])
async def test_post_message_validation(db_session, conn_manager, payload):
    with pytest.raises(InvalidArgument):
        await MessageRelay(db_session, conn_manager).post_message(ChatMessageIn(**payload))


async def test_post_then_history_round_trip(db_session, conn_manager, connect):
    relay = MessageRelay(db_session, conn_manager)
    _, alice_ws = await join(conn_manager, connect, "alice", "general")
    _, bob_ws = await join(conn_manager, connect, "bob", "general")
    _, carol_ws = await join(conn_manager, connect, "carol", "random")

    sent = await relay.post_message(ChatMessageIn(username="alice", room="general", text="Hello there"))

    # отправитель тоже получает сообщение
    assert alice_ws.events("message") == [sent]
    assert bob_ws.events("message") == [sent]
    assert carol_ws.events("message") == []

    history = await relay.get_history("general", 10)
    assert len(history) == 1
    assert history[0]["id"] == sent["id"]
    assert (history[0]["username"], history[0]["text"], history[0]["type"]) == ("alice", "Hello there", "text")


async def test_history_keeps_latest_messages_in_ascending_order(db_session, conn_manager):
    relay = MessageRelay(db_session, conn_manager)
    for number in range(5):
        await relay.post_message(ChatMessageIn(username="alice", room="general", text=f"m{number}"))

    history = await relay.get_history("general", 3)

    assert [m["text"] for m in history] == ["m2", "m3", "m4"]
    with pytest.raises(InvalidArgument):
        await relay.get_history("general", 0)


async def test_file_message_is_enriched_with_metadata(db_session, conn_manager, connect):
    stored = await FileRepository(db_session).create(
        filename="abc-123.pdf",
        original_name="Report.PDF",
        file_path="/var/uploads/abc-123.pdf",
        file_size=2048,
        mime_type="application/pdf",
        username="alice",
        room="general",
    )
    relay = MessageRelay(db_session, conn_manager)
    _, bob_ws = await join(conn_manager, connect, "bob", "general")

    sent = await relay.post_message(ChatMessageIn(
        username="alice", room="general", type="file", file={"id": stored.id},
    ))

    expected_file = {
        "id": stored.id,
        "name": "Report.PDF",
        "url": "/uploads/abc-123.pdf",
        "size": 2048,
        "type": "documents",
        "mimeType": "application/pdf",
    }
    assert sent["file"] == expected_file
    assert sent["text"] is None
    assert bob_ws.events("message")[0]["file"] == expected_file

    history = await relay.get_history("general", 10)
    assert history[0]["type"] == "file"
    assert history[0]["file_id"] == stored.id
    assert history[0]["file"] == expected_file


async def test_unknown_file_keeps_client_metadata(db_session, conn_manager):
    relay = MessageRelay(db_session, conn_manager)

    sent = await relay.post_message(ChatMessageIn(
        username="alice", room="general", type="file", file={"id": 77, "name": "a.png"},
    ))

    assert sent["file"]["id"] == 77
    assert sent["file"]["name"] == "a.png"
    history = await relay.get_history("general", 10)
    assert history[0]["file_id"] is None


async def test_reply_reference_is_parsed(db_session, conn_manager):
    relay = MessageRelay(db_session, conn_manager)
    reply = {"id": 1, "username": "bob", "text": "original"}

    sent = await relay.post_message(ChatMessageIn(
        username="alice", room="general", text="answer", replyTo=json.dumps(reply),
    ))

    assert sent["replyTo"] == reply
    stored = (await MessageRepository(db_session).get_room_messages("general"))[0]
    assert stored.reply_to == reply


def test_parse_reply_drops_garbage():
    assert parse_reply(None) is None
    assert parse_reply("{not json") is None
    assert parse_reply("[1, 2]") is None
    assert parse_reply({"id": 3}) == {"id": 3}


def test_file_type_categories():
    assert get_file_type("photo.JPG") == "images"
    assert get_file_type("clip.mkv") == "videos"
    assert get_file_type("script.py") == "code"
    assert get_file_type("archive.tar.gz") == "archives"
    assert get_file_type("README") == "other"


@pytest.fixture
def failing_store(monkeypatch):
    async def broken_create(self, *args, **kwargs):
        raise OperationalError("INSERT INTO messages", {}, Exception("disk I/O error"))
    monkeypatch.setattr(MessageRepository, "create", broken_create)


async def test_best_effort_broadcasts_despite_store_failure(db_session, conn_manager, connect, failing_store):
    relay = MessageRelay(db_session, conn_manager, delivery_mode="best_effort")
    _, bob_ws = await join(conn_manager, connect, "bob", "general")

    sent = await relay.post_message(ChatMessageIn(username="alice", room="general", text="still here"))

    assert sent["id"] > 0
    assert bob_ws.events("message") == [sent]


async def test_durable_mode_does_not_broadcast_unsaved_messages(db_session, conn_manager, connect, failing_store):
    relay = MessageRelay(db_session, conn_manager, delivery_mode="durable")
    _, bob_ws = await join(conn_manager, connect, "bob", "general")

    with pytest.raises(StoreError):
        await relay.post_message(ChatMessageIn(username="alice", room="general", text="lost"))
    assert bob_ws.events("message") == []


def test_unknown_delivery_mode_is_rejected(conn_manager):
    with pytest.raises(ValueError):
        MessageRelay(None, conn_manager, delivery_mode="sometimes")


async def test_unknown_message_type_is_rejected(db_session, conn_manager):
    with pytest.raises(ValidationError):
        ChatMessageIn(username="alice", room="general", text="hi", type="banana")

    assert await MessageRelay(db_session, conn_manager).get_history("general", 10) == []


async def test_file_lookup_failure_rolls_back_and_still_saves(db_session, conn_manager, monkeypatch):
    async def broken_lookup(self, file_id):
        raise OperationalError("SELECT files", {}, Exception("connection reset"))
    monkeypatch.setattr(FileRepository, "get_by_id", broken_lookup)

    rollbacks = []
    original_rollback = db_session.rollback

    async def counting_rollback():
        rollbacks.append(True)
        await original_rollback()
    monkeypatch.setattr(db_session, "rollback", counting_rollback)

    relay = MessageRelay(db_session, conn_manager)
    sent = await relay.post_message(ChatMessageIn(
        username="alice", room="general", type="file", file={"id": 5, "name": "a.png"},
    ))

    assert rollbacks == [True]
    assert sent["file"]["name"] == "a.png"
    history = await relay.get_history("general", 10)
    assert [(m["id"], m["file_id"]) for m in history] == [(sent["id"], None)]
