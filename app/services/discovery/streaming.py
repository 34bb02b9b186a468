"""Framing of discovery events as ``data: <json>\\n\\n`` chunks, and the matching reader."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable

from pydantic import ValidationError

from app.models.discovery import DiscoveryEvent, EventType

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data: "
FRAME_SEPARATOR = "\n\n"
UNEXPECTED_FAILURE_MESSAGE = "Discovery failed unexpectedly"


def encode_event(event: DiscoveryEvent) -> str:
    payload = json.dumps(event.to_payload(), ensure_ascii=False, separators=(",", ":"))
    return f"{FRAME_PREFIX}{payload}{FRAME_SEPARATOR}"


async def encode_event_stream(events: AsyncIterable[DiscoveryEvent]) -> AsyncIterator[str]:
    """Frame every event; an exception escaping the producer becomes a final error frame."""
    try:
        async for event in events:
            yield encode_event(event)
    except Exception as exc:
        logger.exception("discovery.stream.failed")
        message = str(exc) or UNEXPECTED_FAILURE_MESSAGE
        yield encode_event(DiscoveryEvent(type=EventType.ERROR, message=message))


class EventStreamDecoder:
    """Incremental reader that buffers by newline and skips malformed frames."""

    def __init__(self) -> None:
        self._buffer = ""
        self.malformed_frames = 0

    def feed(self, chunk: str) -> list[DiscoveryEvent]:
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._decode_lines(lines)

    def flush(self) -> list[DiscoveryEvent]:
        remainder, self._buffer = self._buffer, ""
        return self._decode_lines([remainder])

    def _decode_lines(self, lines: Iterable[str]) -> list[DiscoveryEvent]:
        events: list[DiscoveryEvent] = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(FRAME_PREFIX):
                continue
            try:
                events.append(DiscoveryEvent.model_validate_json(line[len(FRAME_PREFIX) :]))
            except ValidationError:
                self.malformed_frames += 1
                logger.debug("discovery.stream.malformed_frame", extra={"frame": line[:200]})
        return events


def decode_event_stream(chunks: Iterable[str]) -> list[DiscoveryEvent]:
    decoder = EventStreamDecoder()
    events: list[DiscoveryEvent] = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    events.extend(decoder.flush())
    return events
