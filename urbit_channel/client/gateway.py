"""
MODULE OVERVIEW:
Every request/response call the client makes to a ship.

WHAT IS HAPPENING HERE:
Writes are PUTs of a JSON array of actions to the channel endpoint; the ship
answers 2xx (usually 204 No Content) on success. Reads ("scries") are plain GETs
against `/~/scry`, which has nothing to do with the channel. The endpoint and
cookie are read from `self.identity` on every single request, and the identity
object is only ever replaced, never edited, so a batch can't be sent to a stale
channel token.
"""
import threading
import time
from typing import Any, Callable

import httpx
from loguru import logger

from urbit_channel.client.identity import scry_endpoint
from urbit_channel.client.registry import Subscription
from urbit_channel.shared.errors import (
    ActivationError,
    ChannelCreationError,
    ChannelHTTPError,
    PokeError,
    ScryError,
    SubscribeError,
)
from urbit_channel.shared.models import (
    ChannelAction,
    ChannelIdentity,
    PokeAction,
    SubscribeAction,
    UnsubscribeAction,
    dump_batch,
)

ACTIVATION_APP = "hood"
ACTIVATION_MARK = "helm-hi"
ACTIVATION_MESSAGE = "Opening API channel"


class ActionIdMinter:
    """
    Millisecond timestamps as action ids, bumped past the last one handed out
    so that two pokes inside the same clock tick still get distinct ids.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate


class ActionGateway:
    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        ship: str,
        identity: ChannelIdentity,
        id_minter: ActionIdMinter | None = None,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.ship = ship
        self.identity = identity
        self.ids = id_minter or ActionIdMinter()

    async def _put(self, actions: list[ChannelAction]) -> httpx.Response:
        identity = self.identity
        logger.debug(f"channel={identity.token} event=put actions={[a.action for a in actions]}")
        return await self.http.put(
            identity.endpoint,
            json=dump_batch(actions),
            headers={"Content-Type": "application/json", "Cookie": identity.credential},
        )

    async def create_channel(self, batch: list[SubscribeAction]) -> None:
        response = await self._put(batch)
        if not response.is_success:
            raise ChannelCreationError(response.status_code, response.text)
        logger.info(f"channel={self.identity.token} event=created subscriptions={len(batch)}")

    async def activate(self) -> None:
        """A channel's event stream only attaches reliably after it has carried one poke."""
        action = PokeAction(
            id=self.ids.next(),
            ship=self.ship,
            app=ACTIVATION_APP,
            mark=ACTIVATION_MARK,
            payload=ACTIVATION_MESSAGE,
        )
        response = await self._put([action])
        if not response.is_success:
            raise ActivationError(response.status_code, response.text)

    async def poke(self, app: str, mark: str, payload: Any, ship: str | None = None) -> int:
        action = PokeAction(
            id=self.ids.next(),
            ship=ship or self.ship,
            app=app,
            mark=mark,
            payload=payload,
        )
        response = await self._put([action])
        logger.debug(f"event=poke app={app} mark={mark} poke_id={action.id} status={response.status_code}")

        if not response.is_success:
            body = response.text
            logger.warning(f"event=poke_failed app={app} status={response.status_code} body='{body[:500]}'")
            raise PokeError(response.status_code, body)
        return action.id

    async def subscribe(self, subscription: Subscription) -> None:
        """Adds one subscription to a channel that already exists."""
        response = await self._put([subscription.to_action()])
        if not response.is_success:
            raise SubscribeError(subscription.id, response.status_code, response.text)
        logger.info(
            f"channel={self.identity.token} event=subscribe subscription={subscription.id} "
            f"app={subscription.app} path={subscription.path}"
        )

    async def unsubscribe(self, subscription_ids: list[int]) -> None:
        if not subscription_ids:
            return
        actions = [UnsubscribeAction(id=self.ids.next(), subscription=sub_id) for sub_id in subscription_ids]
        response = await self._put(actions)
        if not response.is_success:
            raise ChannelHTTPError(f"Unsubscribe failed: {response.status_code}", response.status_code, response.text)

    async def scry(self, path: str) -> Any:
        response = await self.http.get(
            scry_endpoint(self.base_url, path),
            headers={"Cookie": self.identity.credential},
        )
        if not response.is_success:
            raise ScryError(response.status_code, path, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise ScryError(response.status_code, path, "response was not JSON") from e

    async def delete_channel(self) -> None:
        identity = self.identity
        await self.http.delete(identity.endpoint, headers={"Cookie": identity.credential})

    async def teardown(self, subscription_ids: list[int]) -> None:
        """
        Unsubscribes everything, then deletes the channel.
        Runs during shutdown, so it logs failures and never raises.
        """
        token = self.identity.token
        try:
            await self.unsubscribe(subscription_ids)
        except Exception as e:
            logger.warning(f"channel={token} event=unsubscribe_failed reason='{e}'")
        try:
            await self.delete_channel()
        except Exception as e:
            logger.warning(f"channel={token} event=delete_failed reason='{e}'")
            return
        logger.info(f"channel={token} event=teardown subscriptions={len(subscription_ids)}")
