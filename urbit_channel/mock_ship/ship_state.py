"""
MODULE OVERVIEW:
All state held by the mock ship: open channels, their subscriptions, and the
queue of frames waiting to be streamed to each one.

WHAT IS HAPPENING HERE:
A channel springs into existence on its first PUT, exactly like on a real ship.
Every action in a PUT batch is answered with an ack frame on that channel's
stream. `emit()` fans a diff out to every subscription (on every channel) that
watches the given app + path, which is how the fake traffic generator and the
`/~/mock/emit` route feed clients.
"""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from urbit_channel.shared.models import (
    ChannelAction,
    PokeAction,
    SubscribeAction,
    UnsubscribeAction,
)

# Sentinel pushed into a channel's queue to end its stream
END_OF_STREAM = None


@dataclass
class MockChannel:
    token: str
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=1000))
    subscriptions: dict[int, tuple[str, str]] = field(default_factory=dict)
    last_event_id: int = 0

    def push(self, payload: dict[str, Any]) -> None:
        self.last_event_id += 1
        try:
            # put_nowait avoids blocking the PUT handler on a slow reader
            self.queue.put_nowait({"id": str(self.last_event_id), "data": json.dumps(payload)})
        except asyncio.QueueFull:
            logger.warning(f"channel={self.token} event=dropped reason=queue_full")

    def end_stream(self) -> None:
        try:
            self.queue.put_nowait(END_OF_STREAM)
        except asyncio.QueueFull:
            logger.warning(f"channel={self.token} event=end_dropped reason=queue_full")


class ShipState:
    def __init__(self, ship: str, code: str):
        self.ship = ship.replace("~", "")
        self.code = code
        self.channels: dict[str, MockChannel] = {}
        self.pokes: list[PokeAction] = []
        self.total_frames = 0

    @property
    def cookie_name(self) -> str:
        return f"urbauth-~{self.ship}"

    def is_authorized(self, cookie_header: str | None) -> bool:
        return bool(cookie_header) and f"{self.cookie_name}=" in cookie_header

    # ==========================
    # CHANNEL ACTIONS
    # ==========================
    def apply_actions(self, token: str, actions: list[ChannelAction]) -> MockChannel:
        channel = self.channels.get(token)
        if channel is None:
            channel = MockChannel(token=token)
            self.channels[token] = channel
            logger.info(f"channel={token} event=create")

        for action in actions:
            if isinstance(action, PokeAction):
                self.pokes.append(action)
                channel.push({"id": action.id, "response": "poke", "ok": "ok"})
            elif isinstance(action, SubscribeAction):
                channel.subscriptions[action.id] = (action.app, action.path)
                channel.push({"id": action.id, "response": "subscribe", "ok": "ok"})
                logger.info(f"channel={token} event=subscribe id={action.id} app={action.app} path={action.path}")
            elif isinstance(action, UnsubscribeAction):
                channel.subscriptions.pop(action.subscription, None)
                logger.info(f"channel={token} event=unsubscribe id={action.subscription}")
        return channel

    def delete_channel(self, token: str) -> bool:
        channel = self.channels.pop(token, None)
        if channel is None:
            return False
        channel.end_stream()
        logger.info(f"channel={token} event=delete")
        return True

    # ==========================
    # FAN-OUT
    # ==========================
    def emit(self, app: str, path: str, content: Any) -> int:
        """Pushes a diff to every matching subscription. Returns how many got it."""
        delivered = 0
        for channel in self.channels.values():
            for sub_id, watched in list(channel.subscriptions.items()):
                if watched == (app, path):
                    channel.push({"id": sub_id, "response": "diff", "json": content})
                    delivered += 1
        self.total_frames += delivered
        return delivered

    def kick(self, app: str, path: str) -> int:
        """Ends matching subscriptions with a quit frame."""
        kicked = 0
        for channel in self.channels.values():
            for sub_id, watched in list(channel.subscriptions.items()):
                if watched == (app, path):
                    del channel.subscriptions[sub_id]
                    channel.push({"id": sub_id, "response": "quit"})
                    kicked += 1
        return kicked

    def drop_streams(self) -> int:
        """Ends every open stream without deleting channels, as a flaky network would."""
        for channel in self.channels.values():
            channel.end_stream()
        return len(self.channels)
