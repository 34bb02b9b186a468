"""Shared assertion helpers for discovery event streams."""

from __future__ import annotations

from app.models.discovery import DiscoveryEvent, EventType


def of_type(events: list[DiscoveryEvent], event_type: EventType) -> list[DiscoveryEvent]:
    return [event for event in events if event.type is event_type]
