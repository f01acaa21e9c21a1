import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchchat.config import settings
from matchchat.errors import StorageError, ValidationError
from matchchat.models.message import Message, make_pair_key

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MessageRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, from_user_id: str, to_user_id: str, text: str, created_at: datetime) -> Message:
        message = Message(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            pair_key=make_pair_key(from_user_id, to_user_id),
            text=text,
            created_at=created_at,
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_conversation(self, user_a: str, user_b: str, since: Optional[datetime] = None) -> List[Message]:
        """Both directions of the pair, ascending by (created_at, id)."""
        query = select(Message).where(Message.pair_key == make_pair_key(user_a, user_b))
        if since is not None:
            query = query.where(Message.created_at > since)
        result = await self.db.execute(query.order_by(Message.created_at.asc(), Message.id.asc()))
        return list(result.scalars().all())

    async def get_last_created_at(self) -> Optional[datetime]:
        result = await self.db.execute(select(func.max(Message.created_at)))
        return result.scalar()


class MessageStore:
    """
    Durable append-only log of messages keyed by unordered user pair.

    ``append`` is the single write path. Appends run one at a time under a
    process-wide lock which also assigns ``created_at``, so timestamp order,
    id order and store order always agree.
    """

    def __init__(self, session_factory: async_sessionmaker, max_length: Optional[int] = None):
        self.session_factory = session_factory
        self.max_length = max_length or settings.MAX_MESSAGE_LENGTH
        self._write_lock = asyncio.Lock()
        self._last_created_at: Optional[datetime] = None

    def _validate(self, from_user_id, to_user_id, text) -> str:
        if not from_user_id or not str(from_user_id).strip():
            raise ValidationError("sender is required")
        if not to_user_id or not str(to_user_id).strip():
            raise ValidationError("to and text are required")
        if text is None or not str(text).strip():
            raise ValidationError("to and text are required")

        text = str(text).strip()
        if len(text) > self.max_length:
            raise ValidationError(f"text must be at most {self.max_length} characters")
        return text

    async def _next_created_at(self, repo: MessageRepository) -> datetime:
        if self._last_created_at is None:
            self._last_created_at = await repo.get_last_created_at()

        now = utcnow()
        if self._last_created_at is not None and now < self._last_created_at:
            now = self._last_created_at
        return now

    async def append(self, from_user_id: str, to_user_id: str, text: str) -> Message:
        text = self._validate(from_user_id, to_user_id, text)
        from_user_id, to_user_id = str(from_user_id), str(to_user_id)

        async with self._write_lock:
            async with self.session_factory() as db:
                repo = MessageRepository(db)
                try:
                    created_at = await self._next_created_at(repo)
                    message = await repo.create(from_user_id, to_user_id, text, created_at)
                except SQLAlchemyError as e:
                    await db.rollback()
                    logger.error("Failed to persist message", extra={"from": from_user_id, "to": to_user_id, "error": str(e)})
                    raise StorageError("Failed to send message") from e

            self._last_created_at = message.created_at

        logger.info("Message persisted", extra={"message_id": message.id, "from": from_user_id, "to": to_user_id})
        return message

    async def query(self, user_a: str, user_b: str, since: Optional[datetime] = None) -> List[Message]:
        async with self.session_factory() as db:
            try:
                return await MessageRepository(db).get_conversation(str(user_a), str(user_b), since)
            except SQLAlchemyError as e:
                logger.error("Failed to query conversation", extra={"user_a": user_a, "user_b": user_b, "error": str(e)})
                raise StorageError("Failed to fetch chat history") from e
