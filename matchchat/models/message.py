from sqlalchemy import Column, Text, DateTime, Index
from .base import BaseModel


def make_pair_key(user_a: str, user_b: str) -> str:
    """Key of the unordered pair {user_a, user_b}; the first id is length-prefixed so any id may contain ':'."""
    low, high = sorted((str(user_a), str(user_b)))
    return f"{len(low)}:{low}:{high}"


class Message(BaseModel):
    __tablename__ = "messages"

    from_user_id = Column(Text, nullable=False, index=True)
    to_user_id = Column(Text, nullable=False, index=True)
    pair_key = Column(Text, nullable=False)
    text = Column(Text, nullable=False)
    # assigned by MessageStore.append, never by a column default
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_messages_pair_created", "pair_key", "created_at", "id"),
    )
