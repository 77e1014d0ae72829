import asyncio
import inspect
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Hashable

from loguru import logger


def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Every client calls this once in __init__.
    Keys: events_received, frames_dropped, reconnect_count,
          bytes_received, last_event_at, connected_at.
    """
    return {
        "events_received": 0,
        "frames_dropped": 0,
        "reconnect_count": 0,
        "bytes_received": 0,
        "last_event_at": None,
        "connected_at": None,
    }


def stamp_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def backoff_delay(attempt: int, base_delay_ms: float, max_delay_ms: float) -> float:
    """
    Delay in milliseconds before reconnect attempt number `attempt` (1-based):
    min(base * 2^(attempt-1), max). No jitter, so the schedule is predictable.
    """
    return min(base_delay_ms * (2 ** (attempt - 1)), max_delay_ms)


async def sleep_unless_set(stop: asyncio.Event, delay_s: float) -> bool:
    """
    Sleeps for `delay_s` unless `stop` is set first.
    Returns True if we woke up because of `stop`.
    """
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay_s)
    except asyncio.TimeoutError:
        return False
    return True


async def call_handler(handler: Callable[..., Any] | None, *args: Any, label: str = "handler") -> None:
    """
    Invokes a subscription callback, sync or async.
    A failing handler is logged and never propagates into the stream loop.
    """
    if handler is None:
        return
    try:
        result = handler(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Error in {label}: {e!r}")


class DuplicateFilter:
    """
    Bounded memory of identifiers we've already seen.
    Scoped to whoever owns it (one per client), never a module global.
    """

    def __init__(self, max_size: int = 1024):
        self.max_size = max_size
        self._seen: OrderedDict[Hashable, None] = OrderedDict()

    def seen(self, key: Hashable) -> bool:
        """Records `key` and tells whether it had been recorded before."""
        if key in self._seen:
            self._seen.move_to_end(key)
            return True
        self._seen[key] = None
        if len(self._seen) > self.max_size:
            self._seen.popitem(last=False)
        return False

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
