"""
MODULE OVERVIEW:
Every error the channel client raises or reports.

WHAT IS HAPPENING HERE:
Each phase of a channel's life fails with its own type so callers can tell
*where* things broke: creating the channel, activating it, opening the stream,
poking, scrying. Stream-level failures are never raised to the caller of
`connect()` once the channel is live; they reach the application through each
subscription's error handler instead.
"""


class UrbitChannelError(Exception):
    """Base class for all channel client errors."""


class ChannelHTTPError(UrbitChannelError):
    """A request to the ship came back with a non-success status."""

    def __init__(self, message: str, status: int, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ChannelCreationError(ChannelHTTPError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"Channel creation failed: {status}", status, body)


class ActivationError(ChannelHTTPError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"Channel activation failed: {status}", status, body)


class StreamConnectError(ChannelHTTPError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"Stream connection failed: {status}", status, body)


class SubscribeError(ChannelHTTPError):
    def __init__(self, subscription_id: int, status: int | None = None, body: str = ""):
        detail = f"status {status}" if status is not None else "rejected by ship"
        super().__init__(f"Subscription {subscription_id} failed: {detail}", status or 0, body)
        self.subscription_id = subscription_id


class PokeError(ChannelHTTPError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"Poke failed: {status} - {body}", status, body)


class ScryError(ChannelHTTPError):
    def __init__(self, status: int, path: str, body: str = ""):
        super().__init__(f"Scry failed: {status} for path {path}", status, body)
        self.path = path


class AuthenticationError(UrbitChannelError):
    pass


class FrameParseError(UrbitChannelError):
    """A single event frame could not be decoded. Never fatal to the stream."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class StreamClosedError(UrbitChannelError):
    """The event stream ended and automatic reconnection is disabled."""


class ReconnectExhausted(UrbitChannelError):
    """Every reconnection attempt failed. The client will not retry again."""

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        super().__init__(f"Max reconnection attempts ({attempts}) reached")
        self.attempts = attempts
        self.last_error = last_error
