# =============================================================================
# Event Stream — SSE Frames With Size-Bounded Chunking
# =============================================================================
#
# Every executor event becomes one or more Server-Sent Events frames:
#
#   data: {"type": "<event type>", "data": {...}}\n\n
#
# and the stream ends with the literal frame `data: [DONE]\n\n`.
#
# CHUNKING: a proxy between the service and the browser drops frames larger
# than its buffer. When the JSON of an event exceeds
# `stream_chunk_threshold` bytes, the JSON string is cut into pieces and each
# piece travels as
#
#   {"type": "chunk", "messageId", "chunkIndex", "totalChunks",
#    "chunk", "originalType"}
#
# A piece is measured after escaping (a quote inside `chunk` costs two
# bytes) and holds at most `stream_chunk_size` bytes, small enough that the
# whole chunk frame stays within `stream_chunk_threshold`.
#
# Consumers buffer by messageId until chunkIndex == totalChunks - 1, join the
# `chunk` fields in index order and parse the result as the original event
# (see ChunkReassembler). Pieces are cut on character boundaries, so joining
# them reproduces the original string exactly.
#
# ORDERING: EventStream is a FIFO queue with a single producer (the executor
# callbacks) and a single consumer (the StreamingResponse generator).
# Frames leave in the order they were emitted.
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from app.agents.types import new_id
from app.config import settings

logger = logging.getLogger(__name__)

DONE_FRAME = "data: [DONE]\n\n"
SERIALIZATION_ERROR_MESSAGE = "Event serialization failed"


class EventType(str, enum.Enum):
    ANALYSIS = "analysis"
    PLAN = "plan"
    MESSAGE = "message"
    TASK_UPDATE = "task_update"
    RESULT = "result"
    ERROR = "error"
    CHUNK = "chunk"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _json_default(obj: Any) -> Any:
    """Serialise domain objects through their camelCase `to_dict()`."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def serialize_event(event_type: str, data: Any) -> str:
    return json.dumps(
        {"type": str(getattr(event_type, "value", event_type)), "data": data},
        ensure_ascii=False,
        default=_json_default,
        allow_nan=False,
    )


def format_frame(payload: str) -> str:
    return f"data: {payload}\n\n"


def _utf8_width(char: str) -> int:
    return len(char.encode("utf-8"))


def _escaped_width(char: str) -> int:
    """Bytes `char` occupies once embedded in a JSON string literal."""
    return len(json.dumps(char, ensure_ascii=False).encode("utf-8")) - 2


def split_chunks(
    text: str,
    chunk_size: int,
    width: Callable[[str], int] = _utf8_width,
) -> list[str]:
    """
    Cut `text` into pieces of at most `chunk_size` bytes.

    `width` measures one character; the default is its raw UTF-8 length.
    Cuts fall between characters; a single character wider than `chunk_size`
    still gets a piece of its own.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    pieces: list[str] = []
    current: list[str] = []
    current_size = 0
    for char in text:
        char_width = width(char)
        if current and current_size + char_width > chunk_size:
            pieces.append("".join(current))
            current, current_size = [], 0
        current.append(char)
        current_size += char_width
    if current or not pieces:
        pieces.append("".join(current))
    return pieces


def encode_event(
    event_type: str,
    data: Any,
    threshold: int | None = None,
    chunk_size: int | None = None,
) -> list[str]:
    """
    Encode one event as the list of SSE frames to write, in order.

    A serialisation failure never breaks the stream: the event is replaced
    by a generic error frame.
    """
    threshold = threshold or settings.stream_chunk_threshold
    chunk_size = chunk_size or settings.stream_chunk_size
    original_type = str(getattr(event_type, "value", event_type))

    try:
        payload = serialize_event(original_type, data)
    except (TypeError, ValueError) as e:
        logger.error("Failed to serialise %s event: %s", original_type, e)
        return [format_frame(serialize_event(
            EventType.ERROR.value, {"message": SERIALIZATION_ERROR_MESSAGE},
        ))]

    if len(payload.encode("utf-8")) <= threshold:
        return [format_frame(payload)]

    message_id = new_id()

    def chunk_frame(index: int, total: int, piece: str) -> str:
        return format_frame(json.dumps(
            {
                "type": EventType.CHUNK.value,
                "messageId": message_id,
                "chunkIndex": index,
                "totalChunks": total,
                "chunk": piece,
                "originalType": original_type,
            },
            ensure_ascii=False,
        ))

    # Pieces are measured escaped, as they appear inside the envelope.
    # There are never more pieces than payload characters, so len(payload)
    # bounds the width of the index fields.
    overhead = len(chunk_frame(len(payload), len(payload), "").encode("utf-8"))
    budget = min(chunk_size, threshold - overhead)
    if budget <= 0:
        logger.warning(
            "Chunk envelope (%d bytes) does not fit threshold %d; using chunk size %d",
            overhead, threshold, chunk_size,
        )
        budget = chunk_size

    pieces = split_chunks(payload, budget, width=_escaped_width)
    logger.debug(
        "Chunking %s event %s: %d bytes → %d chunks",
        original_type, message_id, len(payload.encode("utf-8")), len(pieces),
    )
    return [
        chunk_frame(index, len(pieces), piece)
        for index, piece in enumerate(pieces)
    ]


# ---------------------------------------------------------------------------
# Decoding (consumer side)
# ---------------------------------------------------------------------------


def parse_frame(frame: str) -> dict | None:
    """Parse one `data: ...` frame; None for the [DONE] terminator."""
    body = frame.strip()
    if body.startswith("data: "):
        body = body[len("data: "):]
    if body == "[DONE]":
        return None
    return json.loads(body)


class ChunkReassembler:
    """
    Rebuilds chunked events on the consumer side.

    Usage:
        reassembler = ChunkReassembler()
        for frame in frames:
            event = parse_frame(frame)
            if event is None:
                break
            complete = reassembler.feed(event)
            if complete is not None:
                handle(complete)
    """

    def __init__(self) -> None:
        self._buffers: dict[str, dict[int, str]] = {}

    def feed(self, event: dict) -> dict | None:
        """Return the complete event, or None while chunks are outstanding."""
        if event.get("type") != EventType.CHUNK.value:
            return event

        message_id = event["messageId"]
        buffer = self._buffers.setdefault(message_id, {})
        buffer[event["chunkIndex"]] = event["chunk"]

        if event["chunkIndex"] != event["totalChunks"] - 1:
            return None

        del self._buffers[message_id]
        joined = "".join(buffer[i] for i in sorted(buffer))
        return json.loads(joined)

    @property
    def pending(self) -> int:
        return len(self._buffers)


# ---------------------------------------------------------------------------
# Stream
# ---------------------------------------------------------------------------


class EventStream:
    """
    FIFO of encoded frames between the executor and the HTTP response.

    `emit()` is synchronous so it can be used directly as an executor
    callback; `frames()` drains the queue until `close()`.
    """

    def __init__(
        self,
        threshold: int | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._threshold = threshold
        self._chunk_size = chunk_size
        self._closed = False

    def emit(self, event_type: str, data: Any) -> None:
        if self._closed:
            logger.warning("Dropping %s event emitted after stream close", event_type)
            return
        for frame in encode_event(event_type, data, self._threshold, self._chunk_size):
            self._queue.put_nowait(frame)

    def done(self) -> None:
        """Write the [DONE] terminator and close."""
        if not self._closed:
            self._queue.put_nowait(DONE_FRAME)
        self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame
