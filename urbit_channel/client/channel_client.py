"""
MODULE OVERVIEW:
The persistent channel client: the one object an application holds.

WHAT IS HAPPENING HERE:
`connect()` creates the channel with every subscription registered so far,
activates it with a poke, opens the event stream and returns as soon as the
background read task is running. That task is the ONLY place event and quit
handlers are called from, one frame at a time, in stream order.

When the stream ends on its own, the same task hands over to the
ReconnectController, which builds a new channel (new token, same subscription
ids) until it works or the attempt budget runs out. Only then do the
subscriptions' error handlers hear about it.

Pokes, scries and new subscriptions are ordinary request/response calls that
can run alongside the read task.
"""
import asyncio
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from urbit_channel.client.auth import authenticate
from urbit_channel.client.byte_source import ByteSource
from urbit_channel.client.gateway import ActionGateway
from urbit_channel.client.identity import derive_ship, new_identity, normalize_credential
from urbit_channel.client.reconnect import ReconnectController, ReconnectState
from urbit_channel.client.registry import (
    ErrorHandler,
    EventHandler,
    QuitHandler,
    SubscriptionRegistry,
)
from urbit_channel.client.router import EventRouter
from urbit_channel.client.stream_reader import StreamReader
from urbit_channel.shared.client_utils import call_handler, make_client_stats, stamp_now
from urbit_channel.shared.config import Settings
from urbit_channel.shared.errors import StreamClosedError, UrbitChannelError
from urbit_channel.shared.models import ChannelIdentity


class UrbitChannelClient:
    def __init__(
        self,
        url: str,
        cookie: str,
        *,
        ship: str | None = None,
        auto_reconnect: bool = True,
        max_reconnect_attempts: int = 10,
        reconnect_delay_ms: float = 1000,
        max_reconnect_delay_ms: float = 30000,
        on_reconnect: Callable[["UrbitChannelClient"], Awaitable[None]] | None = None,
        on_status_change: Callable[[str], Awaitable[None]] | None = None,
        suppress_duplicate_events: bool = False,
        request_timeout_s: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url.rstrip("/")
        self.ship = (ship or derive_ship(self.url)).replace("~", "")
        self.on_reconnect = on_reconnect
        self.on_status_change_callback = on_status_change
        self.stats = make_client_stats()
        self.is_connected = False

        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=request_timeout_s)

        self.registry = SubscriptionRegistry()
        self.gateway = ActionGateway(self.http, self.url, self.ship, new_identity(self.url, cookie))
        self.router = EventRouter(self.registry, self.stats, suppress_duplicates=suppress_duplicate_events)
        self.reconnector = ReconnectController(
            ReconnectState(
                max_attempts=max_reconnect_attempts,
                base_delay_ms=reconnect_delay_ms,
                max_delay_ms=max_reconnect_delay_ms,
            ),
            reestablish=self._reestablish,
            on_exhausted=self._report_terminal,
            enabled=auto_reconnect,
        )
        self.reader = StreamReader(
            self.http,
            self.router,
            self.stats,
            is_aborted=lambda: self.reconnector.aborted,
            connect_timeout_s=request_timeout_s,
        )

        self._task: asyncio.Task | None = None
        # A channel exists on the ship (its creation PUT succeeded)
        self._established = False
        # _establish() is between its first request and handing over to the reader
        self._connecting = False
        self._torn_down = False

    @classmethod
    def from_settings(cls, settings: Settings, cookie: str, **overrides: Any) -> "UrbitChannelClient":
        options = dict(
            ship=settings.URBIT_SHIP,
            auto_reconnect=settings.AUTO_RECONNECT,
            max_reconnect_attempts=settings.MAX_RECONNECT_ATTEMPTS,
            reconnect_delay_ms=settings.RECONNECT_DELAY_MS,
            max_reconnect_delay_ms=settings.MAX_RECONNECT_DELAY_MS,
            suppress_duplicate_events=settings.SUPPRESS_DUPLICATE_EVENTS,
            request_timeout_s=settings.REQUEST_TIMEOUT_S,
        )
        options.update(overrides)
        return cls(settings.URBIT_URL, cookie, **options)

    @classmethod
    async def login(cls, url: str, code: str, **kwargs: Any) -> "UrbitChannelClient":
        cookie = await authenticate(url, code, http=kwargs.get("http_client"))
        return cls(url, cookie, **kwargs)

    # ==========================
    # STATE
    # ==========================
    @property
    def identity(self) -> ChannelIdentity:
        return self.gateway.identity

    @property
    def channel_id(self) -> str:
        return self.gateway.identity.token

    @property
    def channel_url(self) -> str:
        return self.gateway.identity.endpoint

    @property
    def aborted(self) -> bool:
        return self.reconnector.aborted

    @property
    def events_received(self) -> int:
        return self.stats["events_received"]

    @property
    def reconnect_count(self) -> int:
        return self.stats["reconnect_count"]

    def update_credential(self, cookie: str) -> None:
        """Swaps in a fresh session cookie, typically from an on_reconnect hook."""
        self.gateway.identity = self.gateway.identity.model_copy(
            update={"credential": normalize_credential(cookie)}
        )

    async def _emit_status(self, status: str) -> None:
        await call_handler(self.on_status_change_callback, status, label="status callback")

    def _ensure_open(self) -> None:
        if self.aborted:
            raise UrbitChannelError("Client is closed")

    # ==========================
    # SUBSCRIPTIONS
    # ==========================
    async def subscribe(
        self,
        app: str,
        path: str,
        *,
        ship: str | None = None,
        on_event: EventHandler | None = None,
        on_error: ErrorHandler | None = None,
        on_quit: QuitHandler | None = None,
    ) -> int:
        """
        Registers a subscription and returns its id. Before `connect()` it just
        joins the channel-creation batch; on a live channel it is sent right away.
        One registered while `connect()` is still in flight is sent as soon as
        that channel exists.
        """
        self._ensure_open()
        sub_id = self.registry.register(
            ship=(ship or self.ship).replace("~", ""),
            app=app,
            path=path,
            on_event=on_event,
            on_error=on_error,
            on_quit=on_quit,
        )

        if self.is_connected:
            subscription = self.registry.lookup(sub_id)
            try:
                await self.gateway.subscribe(subscription)
            except Exception:
                self.registry.remove(sub_id)
                raise
        return sub_id

    async def unsubscribe(self, sub_id: int) -> None:
        subscription = self.registry.remove(sub_id)
        if subscription is None or not self.is_connected or self.aborted:
            return
        await self.gateway.unsubscribe([sub_id])
        logger.info(f"channel={self.channel_id} event=unsubscribe subscription={sub_id}")

    # ==========================
    # CONNECTION LIFECYCLE
    # ==========================
    async def connect(self) -> None:
        """
        Creates and activates the channel, then starts the background reader.
        Errors from this first attempt go straight to the caller.
        """
        self._ensure_open()
        await self._emit_status("CONNECTING")
        await self._establish()

    async def _establish(self) -> None:
        """
        Builds one channel generation: create, activate, open the stream, start
        the reader. `close()` may land during any of these awaits, so the
        aborted flag is checked before every request; if a channel was already
        created by then, it is torn down here rather than left on the ship.
        """
        self._connecting = True
        try:
            await self._open_channel()
        finally:
            self._connecting = False
            if self.aborted:
                await self._release()

    async def _open_channel(self) -> None:
        self._ensure_open()
        self._established = False
        batch = self.registry.batch()
        await self.gateway.create_channel(batch)
        self._established = True

        self._ensure_open()
        await self.gateway.activate()

        self._ensure_open()
        self.router.new_generation()
        source = await self.reader.open(self.gateway.identity)
        try:
            self._ensure_open()
            await self._send_late_subscriptions({action.id for action in batch})
            self._ensure_open()
        except BaseException:
            await source.aclose()
            raise

        # No await between the last registry check above and is_connected:
        # from here on subscribe() sends its own action.
        self._task = asyncio.create_task(
            self._supervise_stream(source),
            name=f"urbit-channel-{self.channel_id}",
        )
        self.is_connected = True
        self.stats["connected_at"] = stamp_now()
        self.reconnector.mark_connected()
        logger.info(f"channel={self.channel_id} event=connect subscriptions={len(self.registry)}")
        await self._emit_status("ACTIVE")

    async def _send_late_subscriptions(self, sent: set[int]) -> None:
        """
        Sends subscriptions registered after the creation batch was taken.
        Loops until a pass finds nothing new, since each PUT is an await
        during which another subscribe() can register.
        """
        while True:
            late = [sub for sub in self.registry.all() if sub.id not in sent]
            if not late:
                return
            for subscription in late:
                sent.add(subscription.id)
                try:
                    await self.gateway.subscribe(subscription)
                except Exception as e:
                    self.registry.remove(subscription.id)
                    logger.warning(f"channel={self.channel_id} event=late_subscribe_failed subscription={subscription.id} reason='{e}'")
                    await call_handler(
                        subscription.on_error,
                        e,
                        label=f"error handler for subscription {subscription.id}",
                    )

    async def _reestablish(self) -> None:
        self.stats["reconnect_count"] += 1
        self.gateway.identity = new_identity(self.url, self.identity.credential, previous=self.identity)
        logger.info(f"channel={self.channel_id} event=reconnecting reason=new_channel_id")

        if self.on_reconnect is not None:
            await self.on_reconnect(self)
        if self.aborted:
            raise UrbitChannelError("Client closed during reconnection")

        await self._establish()

    async def _supervise_stream(self, source: ByteSource) -> None:
        error: BaseException | None = None
        try:
            await self.reader.consume(source)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e
            if not self.aborted:
                logger.warning(f"channel={self.channel_id} event=stream_error reason='{e!r}'")

        self.is_connected = False
        if self.aborted:
            return

        if self.reconnector.enabled:
            logger.info(f"channel={self.channel_id} event=stream_end action=reconnect")
            await self._emit_status("RECONNECTING")
            await self.reconnector.run()
            return

        terminal = StreamClosedError("Event stream ended and reconnection is disabled")
        terminal.__cause__ = error
        await self._report_terminal(terminal)

    async def _report_terminal(self, error: UrbitChannelError) -> None:
        self.is_connected = False
        logger.error(f"channel={self.channel_id} event=stream_failed reason='{error}'")
        await self._emit_status("FAILED")
        for subscription in self.registry.all():
            await call_handler(
                subscription.on_error,
                error,
                label=f"error handler for subscription {subscription.id}",
            )

    async def close(self) -> None:
        """
        Aborts the client (once; later calls return immediately), stops the
        reader and any pending reconnect, then tears the channel down.
        Never raises.
        """
        if not self.reconnector.abort():
            return
        self.is_connected = False

        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        # A connect() still in flight in another task releases on its way out
        if not self._connecting:
            await self._release()

        logger.info(f"channel={self.channel_id} event=close")
        await self._emit_status("CLOSED")

    async def _release(self) -> None:
        """Tears down the channel, if one was created, and the owned HTTP client. Runs once."""
        if self._torn_down:
            return
        self._torn_down = True

        if self._established:
            await self.gateway.teardown([sub.id for sub in self.registry.all()])

        if self._owns_http:
            try:
                await self.http.aclose()
            except Exception as e:
                logger.warning(f"event=http_close_failed reason='{e}'")

    async def __aenter__(self) -> "UrbitChannelClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ==========================
    # REQUESTS
    # ==========================
    async def poke(self, app: str, mark: str, json: Any, ship: str | None = None) -> int:
        """Fire-and-forget write. Returns the poke id; raises PokeError on rejection."""
        self._ensure_open()
        return await self.gateway.poke(app, mark, json, ship=ship)

    async def scry(self, path: str) -> Any:
        """Read-only query against `/~/scry{path}`. Raises ScryError on failure."""
        self._ensure_open()
        return await self.gateway.scry(path)
