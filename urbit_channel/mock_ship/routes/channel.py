"""
MODULE OVERVIEW:
The channel endpoint: PUT actions in, GET the event stream out, DELETE to close.

WHAT IS HAPPENING HERE:
The GET returns an sse-starlette EventSourceResponse fed from the channel's
queue. Frames are separated with plain "\\n" (sse-starlette defaults to "\\r\\n")
and a ping comment is sent periodically so idle proxies keep the stream open.
"""
from fastapi import APIRouter, Request, Response
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from urbit_channel.mock_ship.deps import require_session
from urbit_channel.mock_ship.ship_state import END_OF_STREAM, MockChannel
from urbit_channel.shared.models import channel_batch_adapter
from urbit_channel.shared.route_utils import log_connection

router = APIRouter()


async def queue_generator(channel: MockChannel):
    while True:
        frame = await channel.queue.get()
        if frame is END_OF_STREAM:
            break
        yield frame


@router.put("/~/channel/{token}")
async def put_channel(token: str, request: Request):
    ship = require_session(request)
    try:
        actions = channel_batch_adapter.validate_json(await request.body())
    except ValidationError as e:
        return Response(status_code=400, content=f"Malformed action batch: {e.error_count()} errors")

    ship.apply_actions(token, actions)
    log_connection("channel:put", token, {"actions": len(actions)})
    return Response(status_code=204)


@router.get("/~/channel/{token}")
async def stream_channel(token: str, request: Request):
    ship = require_session(request)
    channel = ship.channels.get(token)
    if channel is None:
        return Response(status_code=404)

    log_connection("channel:stream", token)
    return EventSourceResponse(
        queue_generator(channel),
        sep="\n",
        ping=request.app.state.ping_interval_s,
    )


@router.delete("/~/channel/{token}")
async def delete_channel(token: str, request: Request):
    ship = require_session(request)
    if not ship.delete_channel(token):
        return Response(status_code=404)
    log_connection("channel:delete", token)
    return Response(status_code=204)
