"""
MODULE OVERVIEW:
Canned scry responses and a background generator of fake DM traffic.

WHAT IS HAPPENING HERE:
A real ship answers scries from its agents' state and streams chat updates as
people type. We fake both so a client has something predictable to talk to.
"""
import asyncio
import random
import time
from typing import Any, AsyncGenerator

SCRY_FIXTURES: dict[str, Any] = {
    "/chat/dm.json": ["~nec", "~bud", "~wes"],
    "/groups/groups.json": {
        "~zod/lounge": {"meta": {"title": "Lounge", "description": "Say hi"}},
    },
    "/channels/v4/channels.json": {
        "chat/~zod/general": {"perms": {"writers": []}},
        "chat/~zod/random": {"perms": {"writers": []}},
    },
    "/contacts/all.json": {
        "~nec": {"nickname": "Nec"},
        "~bud": {"nickname": "Bud"},
    },
}


def dm_writ(author: str, text: str) -> dict[str, Any]:
    """The shape a chat agent sends for a new DM."""
    sent = int(time.time() * 1000)
    return {
        "id": f"{author}/{sent}",
        "response": {
            "add": {
                "memo": {
                    "author": author,
                    "sent": sent,
                    "content": [{"inline": [text]}],
                },
            },
        },
    }


async def dm_chatter_generator(interval_s: float) -> AsyncGenerator[tuple[str, str, Any], None]:
    """Yields (app, path, content) for a fake DM roughly every `interval_s`."""
    lines = ["hello", "are you there?", "ping", "what's new", "~"]
    senders = list(SCRY_FIXTURES["/chat/dm.json"])

    while True:
        await asyncio.sleep(random.uniform(interval_s * 0.5, interval_s * 1.5))
        sender = random.choice(senders)
        yield "chat", f"/dm/{sender}", dm_writ(sender, random.choice(lines))
