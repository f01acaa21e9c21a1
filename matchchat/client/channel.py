import json
import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from matchchat.config import settings
from matchchat.errors import TransportError, error_from_kind
from matchchat.schemas.message import MessageResponse

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class LiveChannelClient:
    """
    Client side of the live channel.

    Keeps one websocket open (reconnecting with capped exponential backoff),
    correlates ``send_message`` acknowledgements by ``client_message_id``
    and fans out pushed messages and lifecycle changes to listeners.

    A listener is any object with ``on_push(message)``, ``on_connecting()``,
    ``on_connected()`` and ``on_disconnected()``.
    """

    def __init__(
        self,
        url: str,
        token: str,
        ack_timeout: Optional[float] = None,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
    ):
        self.url = url
        self.token = token
        self.ack_timeout = ack_timeout or settings.ACK_TIMEOUT_SECONDS
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay

        self.state = ChannelState.DISCONNECTED
        self._listeners: List = []
        self._pending_acks: Dict[str, asyncio.Future] = {}
        self._ws = None
        self._task: Optional[asyncio.Task] = None

    def add_listener(self, listener):
        if listener in self._listeners:
            return
        self._listeners.append(listener)
        self._notify_state(listener, self.state)

    def remove_listener(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    @staticmethod
    def _notify_state(listener, state: ChannelState):
        if state is ChannelState.CONNECTED:
            listener.on_connected()
        elif state is ChannelState.CONNECTING:
            listener.on_connecting()
        else:
            listener.on_disconnected()

    def _set_state(self, state: ChannelState):
        if state is self.state:
            return
        self.state = state
        logger.info("Live channel state changed", extra={"state": state.value})
        for listener in list(self._listeners):
            self._notify_state(listener, state)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._fail_pending_acks("live channel stopped")
        self._set_state(ChannelState.DISCONNECTED)

    async def _run(self):
        delay = self.reconnect_delay
        uri = f"{self.url}?{urlencode({'token': self.token})}"

        while True:
            self._set_state(ChannelState.CONNECTING)
            try:
                async with websockets.connect(uri) as ws:
                    self._ws = ws
                    delay = self.reconnect_delay
                    self._set_state(ChannelState.CONNECTED)
                    async for raw in ws:
                        self._dispatch(raw)
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.warning("Live channel dropped", extra={"error": repr(e)})
            finally:
                self._ws = None
                self._fail_pending_acks("live channel disconnected")
                self._set_state(ChannelState.DISCONNECTED)

            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_reconnect_delay)

    def _dispatch(self, raw):
        """Handle one incoming frame; a malformed frame is logged and dropped."""
        try:
            frame = json.loads(raw)
            if not isinstance(frame, dict):
                raise ValueError("frame is not an object")
            self._handle_frame(frame)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring malformed frame", extra={"error": repr(e)})

    def _handle_frame(self, frame: dict):
        frame_type = frame.get("type")

        if frame_type == "new_message":
            message = MessageResponse.model_validate(frame["data"])
            for listener in list(self._listeners):
                try:
                    listener.on_push(message)
                except Exception:
                    logger.exception("Listener failed to handle pushed message", extra={"message_id": message.id})

        elif frame_type == "message_sent":
            future = self._pending_acks.get(frame.get("client_message_id"))
            if future is not None and not future.done():
                future.set_result(MessageResponse.model_validate(frame["data"]))

        elif frame_type == "message_failed":
            future = self._pending_acks.get(frame.get("client_message_id"))
            if future is not None and not future.done():
                error = frame.get("error") or {}
                future.set_exception(error_from_kind(error.get("kind"), error.get("detail")))

        elif frame_type == "error":
            logger.warning("Server reported an error", extra={"detail": frame.get("message")})

    def _fail_pending_acks(self, reason: str):
        for future in self._pending_acks.values():
            if not future.done():
                future.set_exception(TransportError(reason))

    async def send_message(self, to: str, text: str, correlation_token: str) -> MessageResponse:
        """Send over the live channel and wait for the acknowledgement tagged with ``correlation_token``."""
        if self._ws is None or self.state is not ChannelState.CONNECTED:
            raise TransportError("live channel not connected")

        future = asyncio.get_running_loop().create_future()
        self._pending_acks[correlation_token] = future
        try:
            await self._ws.send(json.dumps({
                "action": "send_message",
                "data": {"to": to, "text": text, "client_message_id": correlation_token},
            }))
            return await asyncio.wait_for(future, timeout=self.ack_timeout)
        except asyncio.TimeoutError:
            raise TransportError("no acknowledgement received")
        except ConnectionClosed as e:
            raise TransportError("live channel closed while sending") from e
        finally:
            self._pending_acks.pop(correlation_token, None)
