from .base import Base
from .message import Message, make_pair_key

__all__ = [
    "Base",
    "Message",
    "make_pair_key",
]
