"""
MODULE OVERVIEW:
Developer-only controls that a real ship does not have.

WHAT IS HAPPENING HERE:
These let you drive a connected client by hand: push a diff, kick a
subscription with a quit, or cut every stream to watch the client reconnect.
"""
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from urbit_channel.mock_ship.deps import get_ship

router = APIRouter()


class EmitRequest(BaseModel):
    app: str
    path: str
    content: Any = Field(default=None, alias="json")


class KickRequest(BaseModel):
    app: str
    path: str


@router.post("/~/mock/emit")
async def emit(body: EmitRequest, request: Request):
    return {"delivered": get_ship(request).emit(body.app, body.path, body.content)}


@router.post("/~/mock/kick")
async def kick(body: KickRequest, request: Request):
    return {"kicked": get_ship(request).kick(body.app, body.path)}


@router.post("/~/mock/drop")
async def drop(request: Request):
    return {"dropped": get_ship(request).drop_streams()}


@router.get("/~/mock/stats")
async def stats(request: Request):
    ship = get_ship(request)
    return {
        "ship": f"~{ship.ship}",
        "channels": len(ship.channels),
        "subscriptions": sum(len(c.subscriptions) for c in ship.channels.values()),
        "pokes": len(ship.pokes),
        "frames_emitted": ship.total_frames,
    }
