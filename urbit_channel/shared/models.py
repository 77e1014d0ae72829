"""
MODULE OVERVIEW:
This module defines the strictly typed data structures exchanged with a ship's
channel API, powered by Pydantic v2. Both the client and the mock ship use them.

WHAT IS HAPPENING HERE:
Outgoing traffic is a JSON array of actions (poke / subscribe / unsubscribe).
Incoming traffic is a stream of frames whose payload is one of four response
kinds. Instead of probing payload shapes with optional-field checks all over
the place, we validate every payload ONCE into a tagged union keyed on
`response`, and the router matches on the resulting type.
"""
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


# WHAT IS HAPPENING HERE:
# The identity of one channel generation. It is frozen: a reconnect or a
# credential refresh builds a brand new identity and swaps it in wholesale.
class ChannelIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    endpoint: str
    credential: str


# ==========================
# OUTGOING ACTIONS
# ==========================
class PokeAction(BaseModel):
    id: int
    action: Literal["poke"] = "poke"
    ship: str
    app: str
    mark: str
    # Serialized as `json` on the wire. Named `payload` so it does not
    # shadow BaseModel attributes.
    payload: Any = Field(
        default=None,
        validation_alias=AliasChoices("json", "payload"),
        serialization_alias="json",
    )


class SubscribeAction(BaseModel):
    id: int
    action: Literal["subscribe"] = "subscribe"
    ship: str
    app: str
    path: str


class UnsubscribeAction(BaseModel):
    id: int
    action: Literal["unsubscribe"] = "unsubscribe"
    subscription: int


ChannelAction = Union[PokeAction, SubscribeAction, UnsubscribeAction]

channel_batch_adapter: TypeAdapter[list[ChannelAction]] = TypeAdapter(
    list[Annotated[ChannelAction, Field(discriminator="action")]]
)


def dump_batch(actions: list[ChannelAction]) -> list[dict[str, Any]]:
    """Serialize a batch of actions into the JSON array the ship expects."""
    return [action.model_dump(by_alias=True) for action in actions]


# ==========================
# INCOMING RESPONSES
# ==========================
class PokeAck(BaseModel):
    response: Literal["poke"]
    id: int
    ok: Any = None
    err: Any = None


class SubscribeAck(BaseModel):
    response: Literal["subscribe"]
    id: int
    ok: Any = None
    err: Any = None


class Diff(BaseModel):
    response: Literal["diff"]
    id: int | None = None
    # Ships send the body under `json`; `content` is accepted too.
    content: Any = Field(default=None, validation_alias=AliasChoices("json", "content"))


class Quit(BaseModel):
    response: Literal["quit"]
    id: int


ChannelResponse = Annotated[
    Union[PokeAck, SubscribeAck, Diff, Quit],
    Field(discriminator="response"),
]

channel_response_adapter: TypeAdapter[ChannelResponse] = TypeAdapter(ChannelResponse)


# An ephemeral, already-split frame: the optional `id:` line and the decoded
# `data:` line. Built by the stream reader, consumed by the router.
class EventFrame(BaseModel):
    id: int | None = None
    payload: Any
