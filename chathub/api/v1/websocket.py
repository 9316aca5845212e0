import json
import logging
from typing import Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from chathub.database import get_db
from chathub.exceptions import ChatError, InvalidArgument
from chathub.schemas.message import ChatMessageIn, JoinRoom, LeaveRoom
from chathub.schemas.friends import (
    SendFriendRequest,
    RespondToFriendRequest,
    CancelFriendRequest,
    RemoveFriend,
    UsernamePayload,
    UpdateUserStatus,
)
from chathub.services.events import EventDispatcher
from chathub.services.friendship import FriendshipService
from chathub.services.relay import MessageRelay
from chathub.services.rooms import RoomCoordinator
from chathub.websocket_manager import Connection, manager

logger = logging.getLogger(__name__)

router = APIRouter()

# События, у которых есть собственный ответ с success=false
FAILURE_EVENTS = {
    "sendFriendRequest": "friendRequestSent",
    "respondToFriendRequest": "friendRequestResponded",
    "getPendingRequests": "pendingRequests",
    "getFriendsList": "friendsList",
}

@router.websocket("/chat")
async def websocket_chat(websocket: WebSocket, username: Optional[str] = None):
    connection = await manager.connect(websocket, username)
    if username:
        async for db in get_db():
            await RoomCoordinator(db, manager).announce_presence(username, True)
            break

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message_data = json.loads(data)
                action = message_data.get("action")
                payload = message_data.get("data") or {}
            except (json.JSONDecodeError, AttributeError):
                await connection.send("error", {"code": "invalid_argument", "message": "Invalid JSON format"})
                continue

            async for db in get_db():
                await dispatch_action(action, payload, connection, db)
                break

    except WebSocketDisconnect:
        pass
    finally:
        async for db in get_db():
            try:
                await RoomCoordinator(db, manager).disconnect(connection)
            except Exception:
                logger.exception("Error while cleaning up connection %s", connection.id)
            break

async def dispatch_action(action: str, payload: dict, connection: Connection, db: AsyncSession):
    """Обработка одного входящего события; ошибки не рвут соединение"""
    handler = HANDLERS.get(action)
    if handler is None:
        await connection.send("error", {"action": action, "code": "invalid_argument",
                                        "message": f"Unknown action: {action}"})
        return
    # leaveRoom принимает и строку с названием комнаты
    if not isinstance(payload, dict) and not (action == "leaveRoom" and isinstance(payload, str)):
        await send_failure(connection, action, InvalidArgument("data must be an object"))
        return

    try:
        await handler(payload, connection, db)
    except ValidationError as exc:
        await send_failure(connection, action, InvalidArgument(f"Invalid payload: {exc.errors()[0]['msg']}"))
    except ChatError as exc:
        logger.info("%s from connection %s failed: %s", action, connection.id, exc.message)
        await send_failure(connection, action, exc)
    except Exception:
        logger.exception("Unhandled error in %s", action)
        await connection.send("error", {"action": action, "code": "internal_error",
                                        "message": f"Error processing {action}"})

async def send_failure(connection: Connection, action: str, exc: ChatError):
    event = FAILURE_EVENTS.get(action)
    if event is not None:
        payload = {"success": False, "code": exc.code, "message": exc.message}
        if event == "pendingRequests":
            payload["requests"] = []
        elif event == "friendsList":
            payload["friends"] = []
        await connection.send(event, payload)
    else:
        await connection.send("error", {"action": action, **exc.to_dict()})

async def handle_join_room(payload: dict, connection: Connection, db: AsyncSession):
    data = JoinRoom(**payload)
    await RoomCoordinator(db, manager).join(connection, data.username, data.room)

async def handle_leave_room(payload, connection: Connection, db: AsyncSession):
    # leaveRoom приходит и строкой, и объектом
    room = payload if isinstance(payload, str) else LeaveRoom(**payload).room
    await RoomCoordinator(db, manager).leave(connection, room)

async def handle_chat_message(payload: dict, connection: Connection, db: AsyncSession):
    data = ChatMessageIn(**payload)
    if not data.username:
        data.username = connection.username
    if not data.room:
        data.room = connection.current_room
    await MessageRelay(db, manager).post_message(data)

async def handle_send_friend_request(payload: dict, connection: Connection, db: AsyncSession):
    data = SendFriendRequest(**payload)
    from_user = data.from_user or connection.username
    logger.info("Processing friend request from %s to %s", from_user, data.to)

    request = await FriendshipService(db).send_request(from_user, data.to)

    await connection.send("friendRequestSent", {
        "success": True,
        "message": "Friend request sent successfully",
        "requestId": request.id,
        "to": request.to_user,
    })
    await EventDispatcher(manager).friend_request_sent(request)

async def handle_respond_to_friend_request(payload: dict, connection: Connection, db: AsyncSession):
    data = RespondToFriendRequest(**payload)
    service = FriendshipService(db)
    request = await service.respond_to_request(data.requestId, data.response, responder=connection.username)

    await connection.send("friendRequestResponded", {
        "success": True,
        "message": f"Friend request {request.status} successfully",
        "requestId": request.id,
        "response": request.status,
    })

    dispatcher = EventDispatcher(manager)
    await dispatcher.friend_request_responded(request)
    if request.status == "accepted":
        for username in (request.from_user, request.to_user):
            await dispatcher.friends_list_changed(username, await service.get_friends_list(username))

async def handle_cancel_friend_request(payload: dict, connection: Connection, db: AsyncSession):
    data = CancelFriendRequest(**payload)
    removed = await FriendshipService(db).cancel_request(connection.username, data.to)
    await connection.send("friendRequestCancelled", {"success": True, "to": data.to, "removed": removed})
    if removed:
        await EventDispatcher(manager).friend_request_cancelled(connection.username, data.to)

async def handle_get_pending_requests(payload: dict, connection: Connection, db: AsyncSession):
    username = UsernamePayload(**payload).username or connection.username
    if not username:
        raise InvalidArgument("Username is required")
    requests = await FriendshipService(db).get_incoming_requests(username)
    await connection.send("pendingRequests", {"success": True, "requests": requests})

async def handle_get_friends_list(payload: dict, connection: Connection, db: AsyncSession):
    username = UsernamePayload(**payload).username or connection.username
    if not username:
        raise InvalidArgument("Username is required")
    friends = await FriendshipService(db).get_friends_list(username)
    await connection.send("friendsList", {
        "success": True,
        "friends": EventDispatcher(manager).with_presence(friends),
    })

async def handle_remove_friend(payload: dict, connection: Connection, db: AsyncSession):
    data = RemoveFriend(**payload)
    remover = data.username1 or connection.username
    other = data.username2
    service = FriendshipService(db)
    removed = await service.remove_friend(remover, other)

    dispatcher = EventDispatcher(manager)
    await dispatcher.friends_list_changed(remover, await service.get_friends_list(remover))
    if removed:
        await dispatcher.friend_removed(other, remover)
        await dispatcher.friends_list_changed(other, await service.get_friends_list(other))

async def handle_update_user_status(payload: dict, connection: Connection, db: AsyncSession):
    if not connection.username:
        raise InvalidArgument("Join a room or announce userOnline first")
    data = UpdateUserStatus(**payload)
    await RoomCoordinator(db, manager).announce_presence(
        connection.username, manager.is_user_online(connection.username), data.status
    )

async def handle_user_online(payload: dict, connection: Connection, db: AsyncSession):
    username = UsernamePayload(**payload).username or connection.username
    if not username:
        raise InvalidArgument("Username is required")
    coordinator = RoomCoordinator(db, manager)
    await coordinator.bind_identity(connection, username)
    await coordinator.announce_presence(username, True)

async def handle_user_offline(payload: dict, connection: Connection, db: AsyncSession):
    username = UsernamePayload(**payload).username or connection.username
    if not username:
        raise InvalidArgument("Username is required")
    if manager.presence.find(username) is connection:
        manager.presence.unregister(connection)
    await RoomCoordinator(db, manager).announce_presence(username, False)

async def handle_ping(payload, connection: Connection, db: AsyncSession):
    await connection.send("pong", {})

HANDLERS = {
    "joinRoom": handle_join_room,
    "leaveRoom": handle_leave_room,
    "chatMessage": handle_chat_message,
    "sendFriendRequest": handle_send_friend_request,
    "respondToFriendRequest": handle_respond_to_friend_request,
    "cancelFriendRequest": handle_cancel_friend_request,
    "getPendingRequests": handle_get_pending_requests,
    "getFriendsList": handle_get_friends_list,
    "removeFriend": handle_remove_friend,
    "updateUserStatus": handle_update_user_status,
    "userOnline": handle_user_online,
    "userOffline": handle_user_offline,
    "ping": handle_ping,
}

@router.get("/online-users")
async def get_online_users():
    """Список пользователей с живым соединением"""
    connected_users = manager.get_connected_users()
    return {"online_users": connected_users, "count": len(connected_users)}
