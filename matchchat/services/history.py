from datetime import datetime, timezone
from typing import Optional, List

from matchchat.errors import AuthenticationMissing, ValidationError
from matchchat.models.message import Message
from matchchat.repositories.message_repository import MessageStore


class HistoryService:
    """Read-only view of a pair's conversation, used for initial load and fallback polling."""

    def __init__(self, store: MessageStore):
        self.store = store

    async def get_history(self, requester_id: str, peer_id: str, since: Optional[datetime] = None) -> List[Message]:
        if not requester_id:
            raise AuthenticationMissing("User not authenticated")
        if not peer_id or not str(peer_id).strip():
            raise ValidationError("peerId is required")

        if since is not None and since.tzinfo is not None:
            since = since.astimezone(timezone.utc).replace(tzinfo=None)

        return await self.store.query(requester_id, peer_id, since)
