from datetime import datetime, timedelta

from matchchat.client.view import ConfirmedEntry, ConversationView, PendingEntry
from matchchat.schemas.message import MessageResponse

T0 = datetime(2025, 1, 15, 10, 0, 0)


def make_message(message_id, text, sender="u1", recipient="u2", offset=None):
    return MessageResponse.model_validate({
        "id": message_id,
        "from": sender,
        "to": recipient,
        "text": text,
        "createdAt": T0 + timedelta(seconds=message_id if offset is None else offset),
    })


def test_entries_put_confirmed_in_order_then_pending():
    view = ConversationView()
    view.merge_pushed(make_message(3, "c"))
    view.add_pending("u1", "u2", "draft")
    view.merge_pushed(make_message(1, "a"))
    # same timestamp, id breaks the tie
    view.merge_pushed(make_message(2, "b", offset=1))

    entries = view.entries()

    assert [type(e) for e in entries] == [ConfirmedEntry, ConfirmedEntry, ConfirmedEntry, PendingEntry]
    assert [e.text for e in entries] == ["a", "b", "c", "draft"]


def test_merge_pushed_is_idempotent():
    view = ConversationView()
    message = make_message(1, "hi")

    assert view.merge_pushed(message) is True
    assert view.merge_pushed(message) is False
    assert len(view) == 1


def test_merge_pushed_replaces_matching_placeholder():
    view = ConversationView()
    view.add_pending("u1", "u2", "hi")
    view.add_pending("u1", "u2", "other")

    view.merge_pushed(make_message(1, "hi"))

    assert [(e.text, e.pending) for e in view.entries()] == [("hi", False), ("other", True)]


def test_confirm_by_local_id():
    view = ConversationView()
    placeholder = view.add_pending("u1", "u2", "hi")

    assert view.confirm(make_message(7, "hi"), local_id=placeholder.local_id) is True
    assert [(e.id, e.pending) for e in view.entries()] == [(7, False)]


def test_confirm_after_poll_already_delivered_record():
    view = ConversationView()
    placeholder = view.add_pending("u1", "u2", "hi")
    message = make_message(7, "hi")

    view.replace_canonical([message])
    assert view.confirm(message, local_id=placeholder.local_id) is False

    assert [(e.id, e.pending) for e in view.entries()] == [(7, False)]


def test_confirm_by_content_when_no_local_id():
    view = ConversationView()
    view.add_pending("u1", "u2", "hi")

    view.confirm(make_message(4, "hi"))

    assert view.pending() == []
    assert [m.id for m in view.messages()] == [4]


def test_replace_canonical_keeps_unmatched_placeholders():
    view = ConversationView()
    view.add_pending("u1", "u2", "still sending")

    view.replace_canonical([make_message(1, "a"), make_message(2, "b", sender="u2", recipient="u1")])

    assert [(e.text, e.pending) for e in view.entries()] == [("a", False), ("b", False), ("still sending", True)]


def test_replace_canonical_does_not_consume_placeholder_with_known_record():
    view = ConversationView()
    view.merge_pushed(make_message(1, "hi"))
    # user says "hi" again; the old "hi" must not swallow the new placeholder
    view.add_pending("u1", "u2", "hi")

    view.replace_canonical([make_message(1, "hi")])

    assert [(e.text, e.pending) for e in view.entries()] == [("hi", False), ("hi", True)]


def test_replace_canonical_keeps_records_newer_than_the_fetch():
    view = ConversationView()
    view.merge_pushed(make_message(1, "old"))
    view.merge_pushed(make_message(5, "acked after the fetch started"))

    view.replace_canonical([make_message(1, "old"), make_message(2, "missed push")])

    assert [m.id for m in view.messages()] == [1, 2, 5]


def test_replace_canonical_drops_records_the_fetch_no_longer_has():
    view = ConversationView()
    view.merge_pushed(make_message(1, "gone"))

    view.replace_canonical([make_message(2, "kept")])

    assert [m.id for m in view.messages()] == [2]


def test_discard_removes_only_the_placeholder():
    view = ConversationView()
    view.merge_pushed(make_message(1, "hi"))
    placeholder = view.add_pending("u1", "u2", "hi")

    assert view.discard(placeholder.local_id) is True
    assert view.discard(placeholder.local_id) is False
    assert [(e.id, e.pending) for e in view.entries()] == [(1, False)]


def test_find_pending_by_token():
    view = ConversationView()
    placeholder = view.add_pending("u1", "u2", "hi")

    assert view.find_pending_by_token(placeholder.correlation_token) is placeholder
    assert view.find_pending_by_token("unknown") is None
