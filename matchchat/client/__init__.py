from .api import ChatApiClient
from .channel import ChannelState, LiveChannelClient
from .reconciler import ConversationReconciler
from .view import ConfirmedEntry, ConversationView, PendingEntry

__all__ = [
    "ChatApiClient",
    "ChannelState",
    "LiveChannelClient",
    "ConversationReconciler",
    "ConfirmedEntry",
    "ConversationView",
    "PendingEntry",
]
