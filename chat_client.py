#!/usr/bin/env python3

import asyncio
import os
import sys

from matchchat.client import ChatApiClient, ConversationReconciler, LiveChannelClient

BASE_URL = os.getenv("MATCHCHAT_URL", "http://localhost:8000")
WS_URL = BASE_URL.replace("http", "ws", 1) + "/api/v1/ws/chat"


def render(reconciler):
    print("-" * 40)
    for entry in reconciler.entries():
        if entry.pending:
            print(f"  {entry.from_user_id}: {entry.text}  (sending...)")
        else:
            print(f"  {entry.message.from_user_id}: {entry.text}")
    print(f"[{reconciler.state.value}]")


async def chat(me, peer_id, token):
    api = ChatApiClient(BASE_URL, token)
    channel = LiveChannelClient(WS_URL, token)
    reconciler = ConversationReconciler(me, peer_id, api, channel)

    channel.start()
    await reconciler.open()
    await asyncio.sleep(1)
    render(reconciler)

    try:
        while True:
            text = await asyncio.to_thread(input, "> ")
            if text.strip() == "/quit":
                break
            if text.strip():
                message = await reconciler.send(text)
                if message is None and reconciler.last_error:
                    print(f"Not sent: {reconciler.last_error.detail}")
            render(reconciler)
    finally:
        await reconciler.close()
        await channel.stop()
        api.close()


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print("usage: chat_client.py <my-user-id> <peer-user-id> <token>")
        sys.exit(1)
    asyncio.run(chat(*sys.argv[1:]))
