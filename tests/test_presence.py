from chathub.presence import PresenceRegistry
from chathub.websocket_manager import Connection

from conftest import FakeWebSocket, ClosedWebSocket


def make_connection(username=None):
    return Connection(FakeWebSocket(), username)


def test_register_and_find():
    registry = PresenceRegistry()
    connection = make_connection("alice")

    assert registry.register("alice", connection) is None
    assert registry.find("alice") is connection
    assert registry.is_online("alice")
    assert not registry.is_online("bob")
    assert registry.find("bob") is None


def test_second_login_replaces_first():
    registry = PresenceRegistry()
    first = make_connection("alice")
    second = make_connection("alice")
    registry.register("alice", first)

    assert registry.register("alice", second) is first
    assert registry.find("alice") is second
    assert len(registry) == 1

    # устаревшее соединение не может снять актуальное
    assert registry.unregister(first) is False
    assert registry.find("alice") is second
    assert registry.unregister(second) is True
    assert not registry.is_online("alice")


def test_reregistering_same_connection_is_not_a_replacement():
    registry = PresenceRegistry()
    connection = make_connection("alice")
    registry.register("alice", connection)

    assert registry.register("alice", connection) is None


def test_unregister_anonymous_connection():
    registry = PresenceRegistry()
    assert registry.unregister(make_connection()) is False


def test_clear():
    registry = PresenceRegistry()
    registry.register("alice", make_connection("alice"))
    registry.register("bob", make_connection("bob"))
    assert sorted(registry.online_usernames()) == ["alice", "bob"]

    registry.clear()

    assert registry.online_usernames() == []


async def test_manager_routes_personal_messages(conn_manager, connect):
    connection, websocket = await connect(conn_manager, "alice")

    assert websocket.accepted
    assert await conn_manager.send_personal_message("pong", {}, "alice") is True
    assert await conn_manager.send_personal_message("pong", {}, "bob") is False
    assert websocket.types() == ["pong"]


async def test_send_to_closed_socket_is_swallowed(conn_manager):
    connection = await conn_manager.connect(ClosedWebSocket(), "alice")
    conn_manager.add_to_room(connection, "general")

    assert await conn_manager.broadcast_to_room("message", {"text": "hi"}, "general") == 0
    assert connection.closed


async def test_forget_drops_room_and_presence(conn_manager, connect):
    connection, _ = await connect(conn_manager, "alice")
    conn_manager.add_to_room(connection, "general")

    assert conn_manager.forget(connection) is True
    assert conn_manager.occupancy_count("general") == 0
    assert "general" not in conn_manager.rooms
    assert not conn_manager.is_user_online("alice")
