"""
Real-time bot chat over Socket.IO

Client events:
    join-bot {botId}          enter room bot:{botId}; receive status and history
    send-message {message}    queue the message for the worker
    typing-start / typing-stop {botId}
    start-bot / stop-bot {botId}

Server events:
    bot-status-update, conversation-history, new-message,
    typing-indicator, error

Bot replies produced by the worker arrive through the bot_responses and
bot_errors queues and are relayed to the bot room.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set
from urllib.parse import parse_qs
from uuid import UUID

import socketio

from metaplatform.config import settings
from metaplatform.database import get_db_context
from metaplatform.models import BotInstance
from metaplatform.services.bot_execution_service import BotExecutionService
from metaplatform.services.bot_pipeline import message_payload
from metaplatform.services.worker_service import PollingWorker
from metaplatform.utils.errors import AppError

logger = logging.getLogger(__name__)

HISTORY_ON_JOIN = 20


def bot_room(bot_id: Any) -> str:
    return f"bot:{bot_id}"


def instance_payload(instance: BotInstance) -> Dict[str, Any]:
    return {
        "id": str(instance.id),
        "botId": str(instance.bot_id),
        "userId": str(instance.user_id),
        "status": instance.status,
        "lastStartedAt": instance.last_started_at.isoformat() if instance.last_started_at else None,
        "lastStoppedAt": instance.last_stopped_at.isoformat() if instance.last_stopped_at else None,
        "errorMessage": instance.error_message,
    }


def _parse_uuid(value: Any) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


# ========== Blocking DB work (run in a thread) ==========


def _load_room_state(bot_id: UUID, user_id: UUID):
    with get_db_context() as db:
        service = BotExecutionService(db)
        instance = service.get_bot_instance_status(bot_id, user_id)
        if instance is None:
            return None, []
        history = service.get_conversation_history(bot_id, user_id, HISTORY_ON_JOIN)
        return instance_payload(instance), [message_payload(m) for m in history]


def _enqueue_message(bot_id: UUID, user_id: UUID, message: str) -> Dict[str, Any]:
    with get_db_context() as db:
        instance = BotExecutionService(db).enqueue_message(bot_id, user_id, message)
        return instance_payload(instance)


def _start_bot(bot_id: UUID, user_id: UUID) -> Dict[str, Any]:
    with get_db_context() as db:
        return instance_payload(BotExecutionService(db).start_bot_instance(bot_id, user_id))


def _stop_bot(bot_id: UUID, user_id: UUID) -> Dict[str, Any]:
    with get_db_context() as db:
        return instance_payload(BotExecutionService(db).stop_bot_instance(bot_id, user_id))


class ChatServer:
    """
    Socket.IO event handlers and room bookkeeping

    Usage:
        chat_server = ChatServer(sio)
        app = socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
    """

    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio
        self.connected_users: Dict[str, Set[str]] = {}  # userId -> sids
        self.bot_rooms: Dict[str, Set[str]] = {}  # botId -> userIds
        self.typing_users: Dict[str, Set[str]] = {}  # botId -> userIds

        sio.on("connect", self.on_connect)
        sio.on("disconnect", self.on_disconnect)
        sio.on("join-bot", self.on_join_bot)
        sio.on("send-message", self.on_send_message)
        sio.on("typing-start", self.on_typing_start)
        sio.on("typing-stop", self.on_typing_stop)
        sio.on("start-bot", self.on_start_bot)
        sio.on("stop-bot", self.on_stop_bot)

    async def _error(self, sid: str, message: str) -> None:
        await self.sio.emit("error", {"message": message}, to=sid)

    async def on_connect(self, sid, environ, auth=None):
        """Connections must identify their user with userId (auth payload or query string)"""
        user_id = (auth or {}).get("userId") if isinstance(auth, dict) else None
        if not user_id:
            query = parse_qs(environ.get("QUERY_STRING", ""))
            user_id = query.get("userId", [None])[0]

        if not _parse_uuid(user_id):
            logger.warning(f"Socket.IO connection rejected: missing or invalid userId (sid={sid})")
            return False

        await self.sio.save_session(sid, {"userId": str(user_id), "botId": None})
        self.connected_users.setdefault(str(user_id), set()).add(sid)
        logger.info(f"User {user_id} connected: {sid}")
        return True

    async def on_disconnect(self, sid, *args):
        session = await self.sio.get_session(sid)
        user_id = session.get("userId")
        bot_id = session.get("botId")
        logger.info(f"User {user_id} disconnected: {sid}")

        sids = self.connected_users.get(user_id)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                del self.connected_users[user_id]

        if bot_id:
            users = self.bot_rooms.get(bot_id)
            if users is not None:
                users.discard(user_id)
                if not users:
                    del self.bot_rooms[bot_id]
            self.typing_users.get(bot_id, set()).discard(user_id)

    async def on_join_bot(self, sid, data):
        session = await self.sio.get_session(sid)
        bot_id = _parse_uuid((data or {}).get("botId"))
        if bot_id is None:
            await self._error(sid, "botId is required")
            return

        previous = session.get("botId")
        if previous and previous != str(bot_id):
            await self.sio.leave_room(sid, bot_room(previous))

        session["botId"] = str(bot_id)
        await self.sio.save_session(sid, session)
        await self.sio.enter_room(sid, bot_room(bot_id))
        self.bot_rooms.setdefault(str(bot_id), set()).add(session["userId"])

        try:
            status, history = await asyncio.to_thread(_load_room_state, bot_id, UUID(session["userId"]))
        except Exception as e:
            logger.error(f"Error joining bot room {bot_id}: {e}", exc_info=True)
            await self._error(sid, "Failed to join bot room")
            return

        if status:
            await self.sio.emit("bot-status-update", status, to=sid)
        await self.sio.emit("conversation-history", history, to=sid)
        logger.info(f"User {session['userId']} joined bot {bot_id}")

    async def on_send_message(self, sid, data):
        session = await self.sio.get_session(sid)
        bot_id, user_id = session.get("botId"), session.get("userId")
        message = ((data or {}).get("message") or "").strip()
        if not bot_id or not user_id:
            await self._error(sid, "Bot ID or User ID not found")
            return
        if not message:
            await self._error(sid, "Message is required")
            return

        try:
            instance = await asyncio.to_thread(_enqueue_message, UUID(bot_id), UUID(user_id), message)
        except AppError as e:
            await self._error(sid, e.message)
            return
        except Exception as e:
            logger.error(f"Error sending message to bot {bot_id}: {e}", exc_info=True)
            await self._error(sid, "Failed to send message")
            return

        await self.sio.emit(
            "new-message",
            {
                "botInstanceId": instance["id"],
                "userId": user_id,
                "role": "user",
                "content": message,
                "pending": True,
                "createdAt": datetime.utcnow().isoformat(),
            },
            room=bot_room(bot_id),
        )

    async def _typing(self, sid, data, is_typing: bool):
        session = await self.sio.get_session(sid)
        bot_id = (data or {}).get("botId") or session.get("botId")
        user_id = session.get("userId")
        if not bot_id:
            return

        users = self.typing_users.setdefault(str(bot_id), set())
        if is_typing:
            users.add(user_id)
        else:
            users.discard(user_id)

        await self.sio.emit(
            "typing-indicator",
            {"isTyping": is_typing, "userId": user_id, "botId": str(bot_id)},
            room=bot_room(bot_id),
            skip_sid=sid,
        )

    async def on_typing_start(self, sid, data):
        await self._typing(sid, data, True)

    async def on_typing_stop(self, sid, data):
        await self._typing(sid, data, False)

    async def _control(self, sid, data, action, label: str):
        session = await self.sio.get_session(sid)
        bot_id = _parse_uuid((data or {}).get("botId") or session.get("botId"))
        if bot_id is None:
            await self._error(sid, "botId is required")
            return

        try:
            status = await asyncio.to_thread(action, bot_id, UUID(session["userId"]))
        except AppError as e:
            await self._error(sid, e.message)
            return
        except Exception as e:
            logger.error(f"Error trying to {label} bot {bot_id}: {e}", exc_info=True)
            await self._error(sid, f"Failed to {label} bot")
            return

        await self.sio.emit("bot-status-update", status, room=bot_room(bot_id))

    async def on_start_bot(self, sid, data):
        await self._control(sid, data, _start_bot, "start")

    async def on_stop_bot(self, sid, data):
        await self._control(sid, data, _stop_bot, "stop")

    # ========== Broadcasts ==========

    async def broadcast_new_message(self, bot_id: Any, message: Dict[str, Any]) -> None:
        await self.sio.emit("new-message", message, room=bot_room(bot_id))

    def get_connected_users(self, bot_id: Any) -> List[str]:
        return sorted(self.bot_rooms.get(str(bot_id), set()))

    # ========== Queue relay ==========

    async def relay_bot_response(self, event: Dict[str, Any]) -> None:
        """bot_responses event -> new-message with the bot reply"""
        bot_id = event.get("botId")
        response = event.get("botResponse")
        if not bot_id or not response:
            logger.warning("Ignoring bot response event without botId or botResponse")
            return
        await self.broadcast_new_message(bot_id, response)

    async def relay_bot_error(self, event: Dict[str, Any]) -> None:
        bot_id = event.get("botId")
        if not bot_id:
            return
        await self.sio.emit(
            "error",
            {
                "message": event.get("error") or "Bot failed to process the message",
                "botId": bot_id,
                "instanceId": event.get("instanceId"),
            },
            room=bot_room(bot_id),
        )


def create_response_relay(server: ChatServer, interval_seconds: Optional[float] = None) -> PollingWorker:
    """Worker draining bot_responses and bot_errors into the chat rooms"""
    relay = PollingWorker(interval_seconds=interval_seconds)
    relay.register_handler(settings.bot_responses_queue, server.relay_bot_response)
    relay.register_handler(settings.bot_errors_queue, server.relay_bot_error)
    return relay


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins_list,
)
chat_server = ChatServer(sio)
