"""
MODULE OVERVIEW:
One interface over the two kinds of byte streams the reader is handed.

WHAT IS HAPPENING HERE:
In production the body comes from an HTTPX streaming response. In tests, replays
and tools it is any plain iterable (sync or async) of bytes or str chunks. The
stream reader is written once against `ByteSource` and never cares which one it
got. `as_byte_source()` picks the adapter.
"""
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx


def _as_bytes(chunk: bytes | str) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


class ByteSource(ABC):
    @abstractmethod
    def chunks(self) -> AsyncIterator[bytes]:
        """Yields raw chunks exactly as the transport splits them."""

    async def aclose(self) -> None:
        pass


class ResponseByteSource(ByteSource):
    def __init__(self, response: httpx.Response):
        self.response = response

    async def chunks(self) -> AsyncIterator[bytes]:
        async for chunk in self.response.aiter_bytes():
            yield chunk

    async def aclose(self) -> None:
        await self.response.aclose()


class IterableByteSource(ByteSource):
    def __init__(self, iterable: Any):
        self.iterable = iterable

    async def chunks(self) -> AsyncIterator[bytes]:
        if hasattr(self.iterable, "__aiter__"):
            async for chunk in self.iterable:
                yield _as_bytes(chunk)
        else:
            for chunk in self.iterable:
                yield _as_bytes(chunk)

    async def aclose(self) -> None:
        aclose = getattr(self.iterable, "aclose", None)
        if aclose is not None:
            await aclose()


def as_byte_source(body: Any) -> ByteSource:
    if isinstance(body, ByteSource):
        return body
    if isinstance(body, httpx.Response):
        return ResponseByteSource(body)
    if isinstance(body, (bytes, bytearray, str)):
        return IterableByteSource([body])
    if hasattr(body, "__aiter__") or hasattr(body, "__iter__"):
        return IterableByteSource(body)
    raise TypeError(f"Cannot read an event stream from {type(body).__name__}")
