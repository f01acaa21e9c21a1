import asyncio
import logging
from typing import List, Optional

from matchchat.client.channel import ChannelState
from matchchat.client.view import ConversationView, Entry
from matchchat.config import settings
from matchchat.errors import ChatError
from matchchat.schemas.message import MessageResponse

logger = logging.getLogger(__name__)


class ConversationReconciler:
    """
    Client state for one open conversation.

    Two producers feed the same idempotent merge: history fetches (at
    mount, on reconnect and by the fallback poll while the live channel is
    down) and the live channel (pushes and send acknowledgements). Sends
    show a pending placeholder immediately and go over the live channel
    when it is connected, over REST otherwise. Failed sends are not retried.

    ``api`` needs ``send_message(to, text)`` and ``fetch_history(peer_id)``;
    ``channel`` (optional) needs ``add_listener``, ``remove_listener`` and
    ``send_message(to, text, correlation_token)``.
    """

    def __init__(self, me: str, peer_id: str, api, channel=None, poll_interval: Optional[float] = None):
        self.me = str(me)
        self.peer_id = str(peer_id)
        self.api = api
        self.channel = channel
        self.poll_interval = poll_interval or settings.POLL_INTERVAL_SECONDS

        self.view = ConversationView()
        self.state = ChannelState.DISCONNECTED
        self.closed = False
        self.last_error: Optional[ChatError] = None
        self._tasks = set()
        self._poll_task: Optional[asyncio.Task] = None

    def entries(self) -> List[Entry]:
        return self.view.entries()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def open(self):
        if self.channel is not None:
            self.channel.add_listener(self)
        self._spawn(self.refresh())
        self._poll_task = self._spawn(self._poll_loop())

    async def close(self):
        self.closed = True
        if self.channel is not None:
            self.channel.remove_listener(self)

        tasks = [t for t in self._tasks if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _belongs_here(self, message: MessageResponse) -> bool:
        return {str(message.from_user_id), str(message.to_user_id)} == {self.me, self.peer_id}

    # live channel lifecycle

    def on_connecting(self):
        self.state = ChannelState.CONNECTING

    def on_connected(self):
        was_connected = self.state is ChannelState.CONNECTED
        self.state = ChannelState.CONNECTED
        if not was_connected and not self.closed:
            # catch up on anything pushed while we were away
            self._spawn(self.refresh())

    def on_disconnected(self):
        self.state = ChannelState.DISCONNECTED

    def on_push(self, message: MessageResponse):
        if self.closed or not self._belongs_here(message):
            return
        self.view.merge_pushed(message)

    # history

    async def refresh(self):
        try:
            messages = await self.api.fetch_history(self.peer_id)
        except ChatError as e:
            logger.warning("History fetch failed", extra={"peer_id": self.peer_id, "kind": e.kind})
            self.last_error = e
            return

        if self.closed:
            return
        self.view.replace_canonical(m for m in messages if self._belongs_here(m))

    async def _poll_loop(self):
        while not self.closed:
            await asyncio.sleep(self.poll_interval)
            if self.state is not ChannelState.CONNECTED:
                await self.refresh()

    # sending

    async def send(self, text: str) -> Optional[MessageResponse]:
        """
        Send ``text`` to the peer.

        Returns the canonical message, or None when the input was empty, the
        send failed (see ``last_error``) or the conversation was closed.
        """
        text = (text or "").strip()
        if not text or self.closed:
            return None

        placeholder = self.view.add_pending(self.me, self.peer_id, text)
        use_channel = self.channel is not None and self.state is ChannelState.CONNECTED

        try:
            if use_channel:
                message = await self.channel.send_message(self.peer_id, text, placeholder.correlation_token)
            else:
                message = await self.api.send_message(self.peer_id, text)
        except ChatError as e:
            logger.warning("Send failed", extra={"peer_id": self.peer_id, "kind": e.kind, "live": use_channel})
            self.last_error = e
            if not self.closed:
                self.view.discard(placeholder.local_id)
            return None

        if self.closed:
            return None

        if use_channel:
            entry = self.view.find_pending_by_token(placeholder.correlation_token)
            self.view.confirm(message, local_id=entry.local_id if entry else placeholder.local_id)
        else:
            self.view.confirm(message)
        return message
