"""
MODULE OVERVIEW:
The Server-Sent Events reader for a channel.

WHAT IS HAPPENING HERE:
We keep the body open with an HTTPX streaming request and parse the raw text
protocol ourselves: frames are blocks of `id:` / `data:` lines separated by a
blank line. The transport may cut the bytes anywhere (mid-line, mid-frame, even
mid-UTF-8 character), so we keep one growing buffer, decode incrementally, and
only ever hand out blocks that are followed by a delimiter. Whatever trails the
last delimiter waits for the next read.
"""
import codecs
import json
from typing import Any, Callable

import httpx
from loguru import logger

from urbit_channel.client.byte_source import ByteSource, ResponseByteSource
from urbit_channel.shared.errors import FrameParseError, StreamConnectError
from urbit_channel.shared.models import ChannelIdentity, EventFrame

FRAME_DELIMITER = "\n\n"


class FrameBuffer:
    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        # A "\r" at the very end of a read might be the first half of "\r\n"
        self._pending_cr = False

    def feed(self, chunk: bytes) -> list[str]:
        """Appends a chunk and returns every block that is now complete."""
        text = self._decoder.decode(chunk)
        if self._pending_cr:
            text = "\r" + text
        self._pending_cr = text.endswith("\r")
        if self._pending_cr:
            text = text[:-1]
        self._buffer += text.replace("\r\n", "\n")

        blocks = []
        while FRAME_DELIMITER in self._buffer:
            block, self._buffer = self._buffer.split(FRAME_DELIMITER, 1)
            blocks.append(block)
        return blocks

    @property
    def pending(self) -> str:
        return self._buffer


def _field_value(line: str, name_len: int) -> str:
    value = line[name_len:]
    return value[1:] if value.startswith(" ") else value


def parse_frame(block: str) -> EventFrame | None:
    """
    Turns one block into an EventFrame.
    Returns None for blocks without data (keep-alive comments, bare ids).
    Raises FrameParseError if the data is not JSON.
    """
    frame_id: int | None = None
    data_lines = []

    for line in block.split("\n"):
        if line.startswith("id:"):
            value = _field_value(line, 3).strip()
            frame_id = int(value) if value.isdigit() else None
        elif line.startswith("data:"):
            data_lines.append(_field_value(line, 5))

    if not data_lines:
        return None

    data = "\n".join(data_lines)
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise FrameParseError(f"Invalid JSON in frame: {e}", raw=data) from e
    return EventFrame(id=frame_id, payload=payload)


class StreamReader:
    def __init__(
        self,
        http: httpx.AsyncClient,
        router: Any,
        stats: dict,
        is_aborted: Callable[[], bool] = lambda: False,
        connect_timeout_s: float = 30.0,
    ):
        self.http = http
        self.router = router
        self.stats = stats
        self._is_aborted = is_aborted
        self.connect_timeout_s = connect_timeout_s

    async def open(self, identity: ChannelIdentity) -> ResponseByteSource:
        """
        Opens the GET stream. Only the status line is awaited here; the body is
        consumed later by `consume()` on a background task.
        """
        request = self.http.build_request(
            "GET",
            identity.endpoint,
            headers={
                "Accept": "text/event-stream",
                "Cache-Control": "no-cache",
                "Cookie": identity.credential,
            },
            # No read timeout: the stream may stay silent for as long as the ship likes
            timeout=httpx.Timeout(self.connect_timeout_s, read=None),
        )
        response = await self.http.send(request, stream=True)

        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise StreamConnectError(response.status_code, body)

        logger.debug(f"channel={identity.token} event=stream_open status={response.status_code}")
        return ResponseByteSource(response)

    async def consume(self, source: ByteSource) -> None:
        """
        Reads until EOF (returns) or an I/O error (raises). Stops early,
        without raising, once the client is aborted.
        """
        buffer = FrameBuffer()
        try:
            async for chunk in source.chunks():
                if self._is_aborted():
                    break
                self.stats["bytes_received"] += len(chunk)
                for block in buffer.feed(chunk):
                    await self._handle_block(block)
                    if self._is_aborted():
                        break
        finally:
            await source.aclose()

        if buffer.pending.strip():
            logger.debug(f"event=stream_end reason=eof discarded_partial_bytes={len(buffer.pending)}")

    async def _handle_block(self, block: str) -> None:
        try:
            frame = parse_frame(block)
            if frame is None:
                return
            await self.router.route(frame)
        except FrameParseError as e:
            self.stats["frames_dropped"] += 1
            logger.warning(f"event=frame_dropped reason='{e}' raw='{e.raw[:200]}'")
