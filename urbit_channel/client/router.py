"""
MODULE OVERVIEW:
Decides which subscription handler(s) see a decoded frame.

WHAT IS HAPPENING HERE:
The payload is validated once into one of four response kinds, then:
  1. quit      -> that subscription's quit handler, and it leaves the registry
  2. diff with an id we know -> only that subscription's event handler
  3. diff for a retired (quit or unsubscribed) id -> nobody
  4. diff without an id, or with an id never handed out -> every event handler
Acks carry no content, so they never reach event handlers; a rejected
subscribe (an ack with `err`) is reported to the subscription's error handler.
A frame is never both delivered to one handler AND broadcast.
"""
from pydantic import ValidationError
from loguru import logger

from urbit_channel.client.registry import SubscriptionRegistry
from urbit_channel.shared.client_utils import DuplicateFilter, call_handler, stamp_now
from urbit_channel.shared.errors import FrameParseError, SubscribeError
from urbit_channel.shared.models import (
    Diff,
    EventFrame,
    PokeAck,
    Quit,
    SubscribeAck,
    channel_response_adapter,
)


class EventRouter:
    def __init__(self, registry: SubscriptionRegistry, stats: dict, suppress_duplicates: bool = False):
        self.registry = registry
        self.stats = stats
        self._duplicates = DuplicateFilter() if suppress_duplicates else None

    def new_generation(self) -> None:
        """Frame ids restart with every channel, so forget the old ones."""
        if self._duplicates is not None:
            self._duplicates.clear()

    async def route(self, frame: EventFrame) -> None:
        if self._duplicates is not None and frame.id is not None and self._duplicates.seen(frame.id):
            self.stats["frames_dropped"] += 1
            logger.debug(f"event=duplicate_dropped frame_id={frame.id}")
            return

        try:
            response = channel_response_adapter.validate_python(frame.payload)
        except ValidationError as e:
            raise FrameParseError(
                f"Unrecognized payload ({e.error_count()} validation errors)",
                raw=str(frame.payload),
            ) from e

        if isinstance(response, Quit):
            await self._quit(response)
        elif isinstance(response, SubscribeAck):
            await self._subscribe_ack(response)
        elif isinstance(response, PokeAck):
            if response.err is not None:
                logger.warning(f"event=poke_nack poke_id={response.id} err='{response.err}'")
            else:
                logger.debug(f"event=poke_ack poke_id={response.id}")
        elif isinstance(response, Diff):
            await self._diff(response)

    async def _quit(self, message: Quit) -> None:
        logger.info(f"event=quit subscription={message.id}")
        sub = self.registry.remove(message.id)
        if sub is not None:
            await call_handler(sub.on_quit, label=f"quit handler for subscription {sub.id}")

    async def _subscribe_ack(self, ack: SubscribeAck) -> None:
        if ack.err is None:
            logger.debug(f"event=subscribe_ack subscription={ack.id}")
            return
        logger.warning(f"event=subscribe_nack subscription={ack.id} err='{ack.err}'")
        sub = self.registry.remove(ack.id)
        if sub is not None:
            error = SubscribeError(sub.id, body=str(ack.err))
            await call_handler(sub.on_error, error, label=f"error handler for subscription {sub.id}")

    async def _diff(self, diff: Diff) -> None:
        if diff.id is not None and self.registry.is_retired(diff.id):
            logger.debug(f"event=retired_dropped subscription={diff.id}")
            return

        target = self.registry.lookup(diff.id) if diff.id is not None else None

        if target is not None:
            if diff.content is not None:
                self._count_event()
                await call_handler(target.on_event, diff.content, label=f"event handler for subscription {target.id}")
            return

        if diff.content is None:
            return

        self._count_event()
        logger.debug(f"event=broadcast id={diff.id}")
        for sub in self.registry.all():
            await call_handler(sub.on_event, diff.content, label=f"event handler for subscription {sub.id}")

    def _count_event(self) -> None:
        self.stats["events_received"] += 1
        self.stats["last_event_at"] = stamp_now()
