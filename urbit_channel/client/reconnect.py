"""
MODULE OVERVIEW:
Exponential-backoff reconnection for a channel whose stream has ended.

WHAT IS HAPPENING HERE:
    Connected -> (stream ends) -> BackingOff -> Reconnecting -> Connected
                                       \\-> Aborted (from anywhere, terminal)
`run()` is an explicit bounded loop, not a recursive retry: each pass checks
the aborted flag and the attempt budget, sleeps min(base * 2^(n-1), max), and
asks the client to re-establish the channel. The sleep is a wait on an
asyncio.Event, so `abort()` cuts a pending backoff short instead of letting it
run out.
"""
import asyncio
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from urbit_channel.shared.client_utils import backoff_delay, sleep_unless_set
from urbit_channel.shared.errors import ReconnectExhausted


@dataclass
class ReconnectState:
    max_attempts: int = 10
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    attempts: int = 0
    aborted: bool = False


class ReconnectController:
    def __init__(
        self,
        state: ReconnectState,
        reestablish: Callable[[], Awaitable[None]],
        on_exhausted: Callable[[ReconnectExhausted], Awaitable[None]],
        enabled: bool = True,
    ):
        self.state = state
        self.enabled = enabled
        self._reestablish = reestablish
        self._on_exhausted = on_exhausted
        self._lock = threading.Lock()
        self._stop = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self.state.aborted

    @property
    def attempts(self) -> int:
        return self.state.attempts

    def abort(self) -> bool:
        """
        Enters the terminal Aborted state. Safe to call any time, any number of
        times; returns True only for the call that actually set it.
        """
        with self._lock:
            if self.state.aborted:
                return False
            self.state.aborted = True
        self._stop.set()
        return True

    def mark_connected(self) -> None:
        with self._lock:
            if not self.state.aborted:
                self.state.attempts = 0

    def _next_attempt(self) -> int | None:
        with self._lock:
            if self.state.aborted or self.state.attempts >= self.state.max_attempts:
                return None
            self.state.attempts += 1
            return self.state.attempts

    async def _sleep(self, delay_s: float) -> bool:
        return await sleep_unless_set(self._stop, delay_s)

    async def run(self) -> bool:
        """
        Retries until connected (True), aborted (False) or out of attempts
        (False, after reporting ReconnectExhausted).
        """
        last_error: BaseException | None = None

        while True:
            if self.aborted or not self.enabled:
                logger.info("event=reconnect_skipped reason=aborted_or_disabled")
                return False

            attempt = self._next_attempt()
            if attempt is None:
                if self.aborted:
                    return False
                exhausted = ReconnectExhausted(self.state.max_attempts, last_error)
                logger.error(f"event=reconnect_exhausted attempts={self.state.max_attempts} last_error='{last_error}'")
                await self._on_exhausted(exhausted)
                return False

            delay_ms = backoff_delay(attempt, self.state.base_delay_ms, self.state.max_delay_ms)
            logger.warning(f"event=reconnect attempt={attempt}/{self.state.max_attempts} delay_ms={delay_ms:.0f}")

            if await self._sleep(delay_ms / 1000.0) or self.aborted:
                logger.info("event=reconnect_cancelled reason=aborted")
                return False

            try:
                await self._reestablish()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"event=reconnect_failed attempt={attempt} reason='{e}'")
                continue

            self.mark_connected()
            logger.info(f"event=reconnected attempt={attempt}")
            return True
