import json

import pytest

from app.models.discovery import DiscoveredInvestor, DiscoveryEvent, DiscoveryStats, EventType, Progress
from app.services.discovery.streaming import (
    EventStreamDecoder,
    decode_event_stream,
    encode_event,
    encode_event_stream,
)

INVESTOR = DiscoveredInvestor(name="Ada Park", firm_name="Lööm Ventures", fit_score=81)


async def _events(items, failure=None):
    for item in items:
        yield item
    if failure is not None:
        raise failure


def test_encode_event_frames_compact_json_with_snake_case_fields():
    event = DiscoveryEvent(
        type=EventType.INVESTOR_PROFILED,
        message="Ada Park - Score: 81/100",
        data=INVESTOR,
        progress=Progress(current=1, total=2),
    )

    frame = encode_event(event)

    assert frame.startswith("data: {")
    assert frame.endswith("}\n\n")
    payload = json.loads(frame[len("data: ") : -2])
    assert payload["type"] == "investor_profiled"
    assert payload["progress"] == {"current": 1, "total": 2}
    assert payload["data"]["firm_name"] == "Lööm Ventures"
    assert payload["data"]["fit_score"] == 81
    assert payload["data"]["already_in_pipeline"] is False
    assert payload["data"]["email"] is None
    assert "stats" not in payload
    assert "Lööm" in frame


def test_status_frame_omits_absent_fields():
    frame = encode_event(DiscoveryEvent(type=EventType.STATUS, message="Searching..."))

    assert frame == 'data: {"type":"status","message":"Searching..."}\n\n'


@pytest.mark.asyncio
async def test_stream_turns_producer_exception_into_final_error_frame():
    events = [DiscoveryEvent(type=EventType.STATUS, message="Searching...")]

    stream = encode_event_stream(_events(events, failure=RuntimeError("store exploded")))

    frames = [frame async for frame in stream]

    assert len(frames) == 2
    decoded = decode_event_stream(frames)
    assert decoded[-1].type is EventType.ERROR
    assert decoded[-1].message == "store exploded"


def test_decoder_reassembles_frames_split_across_chunks():
    complete = DiscoveryEvent(
        type=EventType.COMPLETE,
        message="Discovery complete",
        stats=DiscoveryStats(total=1, added=1),
    )
    found = DiscoveryEvent(type=EventType.INVESTOR_FOUND, message="Ada Park - Score: 81/100", data=INVESTOR)
    stream = encode_event(complete) + encode_event(found)
    chunks = [stream[index : index + 7] for index in range(0, len(stream), 7)]

    decoded = decode_event_stream(chunks)

    assert decoded == [complete, found]


def test_decoder_skips_malformed_frames_and_keeps_going():
    decoder = EventStreamDecoder()

    events = decoder.feed(
        ": keep-alive\n\n"
        "data: {not json}\n\n"
        'data: {"type":"mystery","message":"?"}\n\n'
        'data: {"type":"status","message":"still here"}\n\n'
    )

    assert [event.message for event in events] == ["still here"]
    assert decoder.malformed_frames == 2


def test_decoder_flush_handles_a_final_frame_without_separator():
    decoder = EventStreamDecoder()

    assert decoder.feed('data: {"type":"error","message":"boom"}') == []
    (event,) = decoder.flush()

    assert event.is_terminal
    assert event.message == "boom"
