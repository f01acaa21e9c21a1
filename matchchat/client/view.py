"""
Local ordered view of one conversation.

Entries are either ``ConfirmedEntry`` (a canonical record carrying a
store-assigned id) or ``PendingEntry`` (an optimistic placeholder for a
send that has not been acknowledged yet). Canonical records are keyed by
id; placeholders are matched by content only, and only against canonical
records the view has not seen before, so each new record consumes at most
one placeholder.

Every operation here is idempotent, which is what lets pushes, polls and
acknowledgements be applied in any order.
"""

import itertools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from matchchat.schemas.message import MessageResponse

_local_ids = itertools.count(1)


def _sort_key(message: MessageResponse):
    return (message.created_at, message.id)


@dataclass(frozen=True)
class ConfirmedEntry:
    message: MessageResponse
    pending = False

    @property
    def id(self) -> int:
        return self.message.id

    @property
    def text(self) -> str:
        return self.message.text


@dataclass(frozen=True)
class PendingEntry:
    from_user_id: str
    to_user_id: str
    text: str
    local_id: str = field(default_factory=lambda: f"local-{next(_local_ids)}")
    correlation_token: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    pending = True

    def matches(self, message: MessageResponse) -> bool:
        return (
            str(message.from_user_id) == str(self.from_user_id)
            and str(message.to_user_id) == str(self.to_user_id)
            and message.text == self.text
        )


Entry = Union[ConfirmedEntry, PendingEntry]


class ConversationView:

    def __init__(self):
        self._confirmed: Dict[int, ConfirmedEntry] = {}
        self._pending: Dict[str, PendingEntry] = {}

    def __len__(self) -> int:
        return len(self._confirmed) + len(self._pending)

    def entries(self) -> List[Entry]:
        """Confirmed records by (createdAt, id), then unconfirmed placeholders in send order."""
        confirmed = sorted(self._confirmed.values(), key=lambda e: _sort_key(e.message))
        return confirmed + list(self._pending.values())

    def messages(self) -> List[MessageResponse]:
        return [e.message for e in sorted(self._confirmed.values(), key=lambda e: _sort_key(e.message))]

    def pending(self) -> List[PendingEntry]:
        return list(self._pending.values())

    def add_pending(self, from_user_id: str, to_user_id: str, text: str) -> PendingEntry:
        entry = PendingEntry(from_user_id=str(from_user_id), to_user_id=str(to_user_id), text=text)
        self._pending[entry.local_id] = entry
        return entry

    def find_pending_by_token(self, correlation_token: str) -> Optional[PendingEntry]:
        for entry in self._pending.values():
            if entry.correlation_token == correlation_token:
                return entry
        return None

    def discard(self, local_id: str) -> bool:
        return self._pending.pop(local_id, None) is not None

    def _consume_matching_pending(self, message: MessageResponse) -> Optional[PendingEntry]:
        for local_id, entry in self._pending.items():
            if entry.matches(message):
                return self._pending.pop(local_id)
        return None

    def confirm(self, message: MessageResponse, local_id: Optional[str] = None) -> bool:
        """
        Resolve a placeholder with its canonical record.

        The placeholder is the one with ``local_id`` when given, otherwise the
        first one with the same sender, recipient and text. Returns False when
        the record was already in the view, in which case only the named
        placeholder is dropped.
        """
        if message.id in self._confirmed:
            if local_id is not None:
                self._pending.pop(local_id, None)
            return False

        if local_id is not None:
            self._pending.pop(local_id, None)
        else:
            self._consume_matching_pending(message)

        self._confirmed[message.id] = ConfirmedEntry(message)
        return True

    def merge_pushed(self, message: MessageResponse) -> bool:
        """Merge one pushed record; returns False if it was already present."""
        if message.id in self._confirmed:
            return False
        self._consume_matching_pending(message)
        self._confirmed[message.id] = ConfirmedEntry(message)
        return True

    def replace_canonical(self, messages: Iterable[MessageResponse]):
        """
        Resynchronize the canonical portion with a full history fetch.

        Records absent from the fetch are kept only when they sort after its
        last record, i.e. when they were confirmed after the fetch's snapshot
        was taken. Placeholders survive unless a record new to the view
        matches them.
        """
        fetched = {m.id: m for m in messages}
        last_key = max((_sort_key(m) for m in fetched.values()), default=None)

        confirmed: Dict[int, ConfirmedEntry] = {}
        for message_id, entry in self._confirmed.items():
            if message_id not in fetched and (last_key is None or _sort_key(entry.message) > last_key):
                confirmed[message_id] = entry

        for message in sorted(fetched.values(), key=_sort_key):
            if message.id not in self._confirmed:
                self._consume_matching_pending(message)
            confirmed[message.id] = ConfirmedEntry(message)

        self._confirmed = confirmed
