import json
import asyncio
import logging
import threading
from typing import Callable, Dict, List, Optional

from fastapi import WebSocket

from matchchat.config import settings
from matchchat.errors import DeliveryMiss
from matchchat.models.message import Message
from matchchat.repositories.message_repository import MessageStore
from matchchat.schemas.message import serialize_message

logger = logging.getLogger(__name__)


class LiveChannel:
    """
    One open websocket bound to one user.

    The channel owns its own lifecycle: whoever registered it is told
    through ``on_close`` callbacks when it goes away.
    """

    def __init__(self, websocket: WebSocket, user_id: str):
        self.websocket = websocket
        self.user_id = user_id
        self.closed = False
        self._close_callbacks: List[Callable[[], None]] = []

    async def send_json(self, payload: dict):
        if self.closed:
            raise DeliveryMiss("channel is closed")
        await self.websocket.send_text(json.dumps(payload))

    def on_close(self, callback: Callable[[], None]):
        self._close_callbacks.append(callback)

    def close(self):
        if self.closed:
            return
        self.closed = True
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()

    def __repr__(self) -> str:
        return f"<LiveChannel user={self.user_id} closed={self.closed}>"


class ConnectionRegistry:
    """At most one live channel per user; a new registration replaces the old one."""

    def __init__(self):
        self._channels: Dict[str, LiveChannel] = {}
        self._lock = threading.Lock()

    def register(self, user_id: str, channel: LiveChannel) -> Optional[LiveChannel]:
        with self._lock:
            previous = self._channels.get(user_id)
            self._channels[user_id] = channel
        return previous if previous is not channel else None

    def deregister(self, user_id: str, channel: LiveChannel) -> bool:
        with self._lock:
            if self._channels.get(user_id) is not channel:
                return False
            del self._channels[user_id]
            return True

    def get(self, user_id: str) -> Optional[LiveChannel]:
        with self._lock:
            return self._channels.get(user_id)

    def user_ids(self) -> List[str]:
        with self._lock:
            return list(self._channels.keys())


class DeliveryGateway:
    """
    Routes a send to the message store and then, best effort, to the recipient.

    Persistence always completes before any push, so history is a superset
    of everything that was ever pushed. Pushes are at most once per attempt
    and never retried; a missed push is recovered by the recipient's next
    history fetch.
    """

    def __init__(self, store: MessageStore, push_timeout: Optional[float] = None):
        self.store = store
        self.push_timeout = push_timeout or settings.PUSH_TIMEOUT_SECONDS
        self._registry = ConnectionRegistry()

    def register(self, user_id: str, channel: LiveChannel):
        previous = self._registry.register(user_id, channel)
        channel.on_close(lambda: self.deregister(user_id, channel))
        if previous is not None:
            logger.info("Live channel replaced", extra={"user_id": user_id})
        else:
            logger.info("Live channel registered", extra={"user_id": user_id})

    def deregister(self, user_id: str, channel: LiveChannel):
        if self._registry.deregister(user_id, channel):
            logger.info("Live channel deregistered", extra={"user_id": user_id})

    def get_channel(self, user_id: str) -> Optional[LiveChannel]:
        return self._registry.get(user_id)

    def get_connected_users(self) -> List[str]:
        return self._registry.user_ids()

    def is_user_online(self, user_id: str) -> bool:
        return self._registry.get(user_id) is not None

    async def send(self, sender_id: str, to_user_id: str, text: str) -> Message:
        message = await self.store.append(sender_id, to_user_id, text)

        try:
            await self.push(message)
        except DeliveryMiss as e:
            logger.info("Push not delivered", extra={"message_id": message.id, "to": message.to_user_id, "reason": e.detail})

        return message

    async def push(self, message: Message):
        channel = self._registry.get(message.to_user_id)
        if channel is None:
            raise DeliveryMiss("recipient has no live channel")

        payload = {"type": "new_message", "data": serialize_message(message)}
        try:
            await asyncio.wait_for(channel.send_json(payload), timeout=self.push_timeout)
        except DeliveryMiss:
            self.deregister(message.to_user_id, channel)
            raise
        except Exception as e:
            logger.warning("Push failed", extra={"message_id": message.id, "to": message.to_user_id, "error": repr(e)})
            self.deregister(message.to_user_id, channel)
            raise DeliveryMiss("push attempt failed") from e
