#!/usr/bin/env python3

import asyncio

from matchchat.auth import create_access_token
from matchchat.database import build_engine, build_session_factory, create_tables
from matchchat.repositories.message_repository import MessageStore

USERS = ["alice", "bob", "charlie"]

CONVERSATIONS = [
    ("alice", "bob", "Hi Bob! We matched on hiking."),
    ("bob", "alice", "Hey Alice, nice to meet you"),
    ("alice", "bob", "Any trail plans this weekend?"),
    ("charlie", "alice", "Hello from nearby!"),
]


async def create_test_messages(store: MessageStore):
    for sender, recipient, text in CONVERSATIONS:
        message = await store.append(sender, recipient, text)
        print(f"Created message {message.id}: {sender} -> {recipient}")


def print_tokens():
    for user_id in USERS:
        print(f"{user_id}: {create_access_token(user_id)}")


async def main():
    engine = build_engine()
    await create_tables(engine)
    try:
        await create_test_messages(MessageStore(build_session_factory(engine)))
    finally:
        await engine.dispose()

    print("Tokens:")
    print_tokens()


if __name__ == "__main__":
    asyncio.run(main())
