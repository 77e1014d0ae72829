"""Tests for the action gateway's request/response calls."""

import httpx
import pytest

from urbit_channel.client.gateway import ActionGateway, ActionIdMinter
from urbit_channel.client.identity import new_identity
from urbit_channel.client.registry import SubscriptionRegistry
from urbit_channel.shared.errors import (
    ActivationError,
    ChannelCreationError,
    PokeError,
    ScryError,
    SubscribeError,
)

from .conftest import COOKIE, SHIP_URL


@pytest.fixture
def gateway(http):
    return ActionGateway(http, SHIP_URL, "zod", new_identity(SHIP_URL, COOKIE))


class TestActionIdMinter:
    """Tests for poke/unsubscribe id minting."""

    def test_ids_are_milliseconds(self):
        """Ids follow the clock in milliseconds."""
        minter = ActionIdMinter(clock=lambda: 1700000000.5)
        assert minter.next() == 1700000000500

    def test_same_tick_ids_differ(self):
        """Two ids in the same millisecond are still distinct and increasing."""
        minter = ActionIdMinter(clock=lambda: 1.0)
        assert [minter.next() for _ in range(3)] == [1000, 1001, 1002]

    def test_clock_going_backwards(self):
        """Ids never decrease even if the clock does."""
        times = iter([5.0, 4.0])
        minter = ActionIdMinter(clock=lambda: next(times))
        first = minter.next()
        assert minter.next() > first


class TestChannelSetup:
    """Tests for create and activate."""

    @pytest.mark.asyncio
    async def test_create_channel_puts_batch(self, ship, gateway):
        """The subscription batch is PUT to the channel endpoint with the cookie."""
        registry = SubscriptionRegistry()
        registry.register(ship="zod", app="chat", path="/dm/~nec")

        await gateway.create_channel(registry.batch())

        token, batch = ship.puts[0]
        assert token == gateway.identity.token
        assert batch == [{"id": 1, "action": "subscribe", "ship": "zod", "app": "chat", "path": "/dm/~nec"}]
        assert ship.requests[0].headers["cookie"] == COOKIE
        assert ship.requests[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_create_channel_any_2xx(self, ship, gateway):
        """200 is as good as 204."""
        ship.put_statuses.append(200)
        await gateway.create_channel([])

    @pytest.mark.asyncio
    async def test_create_channel_failure(self, ship, gateway):
        """A non-2xx status raises ChannelCreationError with status and body."""
        ship.put_statuses.append(403)
        with pytest.raises(ChannelCreationError) as exc_info:
            await gateway.create_channel([])
        assert exc_info.value.status == 403
        assert exc_info.value.body == "bad action"

    @pytest.mark.asyncio
    async def test_activate_pokes_hood(self, ship, gateway):
        """Activation is a helm-hi poke to hood."""
        await gateway.activate()

        (poke,) = ship.actions("poke")
        assert poke["app"] == "hood"
        assert poke["mark"] == "helm-hi"
        assert poke["json"] == "Opening API channel"
        assert poke["ship"] == "zod"

    @pytest.mark.asyncio
    async def test_activate_failure(self, ship, gateway):
        """A rejected activation raises ActivationError."""
        ship.put_statuses.append(500)
        with pytest.raises(ActivationError):
            await gateway.activate()


class TestPoke:
    """Tests for pokes."""

    @pytest.mark.asyncio
    async def test_poke_returns_id(self, ship, gateway):
        """The returned id is the one sent, and the payload goes under `json`."""
        poke_id = await gateway.poke("chat", "chat-dm-action", {"ship": "~nec", "text": "hi"})

        (poke,) = ship.actions("poke")
        assert poke["id"] == poke_id
        assert poke["json"] == {"ship": "~nec", "text": "hi"}
        assert "payload" not in poke

    @pytest.mark.asyncio
    async def test_poke_other_ship(self, ship, gateway):
        """An explicit ship overrides the default."""
        await gateway.poke("chat", "mark", 1, ship="nec")
        assert ship.actions("poke")[0]["ship"] == "nec"

    @pytest.mark.asyncio
    async def test_back_to_back_pokes_distinct(self, ship, gateway):
        """Pokes sent in quick succession get different ids."""
        ids = [await gateway.poke("chat", "mark", i) for i in range(5)]
        assert len(set(ids)) == 5

    @pytest.mark.asyncio
    async def test_poke_failure(self, ship, gateway):
        """A rejected poke raises PokeError with status and body."""
        ship.put_statuses.append(400)
        with pytest.raises(PokeError) as exc_info:
            await gateway.poke("chat", "mark", {})
        assert exc_info.value.status == 400
        assert "bad action" in str(exc_info.value)


class TestSubscribe:
    """Tests for subscribing and unsubscribing on a live channel."""

    @pytest.mark.asyncio
    async def test_subscribe_failure(self, ship, gateway, registry):
        """A rejected subscribe raises SubscribeError naming the id."""
        sub_id = registry.register(ship="zod", app="chat", path="/x")
        ship.put_statuses.append(404)

        with pytest.raises(SubscribeError) as exc_info:
            await gateway.subscribe(registry.lookup(sub_id))
        assert exc_info.value.subscription_id == sub_id
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_unsubscribe_batch(self, ship, gateway):
        """Every id is unsubscribed in one PUT with fresh action ids."""
        await gateway.unsubscribe([1, 2])

        actions = ship.actions("unsubscribe")
        assert [a["subscription"] for a in actions] == [1, 2]
        assert actions[0]["id"] != actions[1]["id"]
        assert len(ship.puts) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_nothing(self, ship, gateway):
        """An empty list sends nothing."""
        await gateway.unsubscribe([])
        assert ship.puts == []


class TestScry:
    """Tests for scries."""

    @pytest.mark.asyncio
    async def test_scry_returns_json(self, ship, gateway):
        """A scry is a GET on /~/scry with the path appended."""
        ship.scry_results["/chat/dm.json"] = ["~nec"]

        assert await gateway.scry("/chat/dm.json") == ["~nec"]
        request = ship.requests[-1]
        assert request.method == "GET"
        assert request.url.path == "/~/scry/chat/dm.json"
        assert request.headers["cookie"] == COOKIE

    @pytest.mark.asyncio
    async def test_scry_failure(self, ship, gateway):
        """A missing path raises ScryError carrying the path."""
        with pytest.raises(ScryError) as exc_info:
            await gateway.scry("/nope.json")
        assert exc_info.value.status == 404
        assert exc_info.value.path == "/nope.json"


class TestTeardown:
    """Tests for shutting a channel down."""

    @pytest.mark.asyncio
    async def test_teardown_unsubscribes_then_deletes(self, ship, gateway):
        """Teardown unsubscribes every id and deletes the channel."""
        await gateway.teardown([1, 2])

        assert [a["subscription"] for a in ship.actions("unsubscribe")] == [1, 2]
        assert ship.deletes == [gateway.identity.token]

    @pytest.mark.asyncio
    async def test_teardown_never_raises(self, ship, gateway):
        """A failing unsubscribe is logged and the delete still happens."""
        ship.put_statuses.append(500)
        await gateway.teardown([1])
        assert ship.deletes == [gateway.identity.token]

    @pytest.mark.asyncio
    async def test_teardown_survives_transport_errors(self, gateway):
        """Even a dead connection doesn't make teardown raise."""

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        gateway.http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        try:
            await gateway.teardown([1])
        finally:
            await gateway.http.aclose()
