"""Event-log count collectors."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..backends.base import RemoteBackend
from .base import BaseCollector, as_count


@dataclass(frozen=True, slots=True)
class EventQuery:
    name: str
    field: str
    channel: str
    event_id: int
    description: str


EVENT_QUERIES: tuple[EventQuery, ...] = (
    EventQuery("app_crash", "app_crash_count", "Application", 1000, "Application Error"),
    EventQuery("kernel_power", "kernel_power_count", "System", 41, "Kernel-Power"),
    EventQuery("unexpected_shutdown", "unexpected_shutdown_count", "System", 6008, "EventLog unexpected shutdown"),
    EventQuery("resource_exhaustion", "resource_exhaustion_count", "System", 2004, "Resource-Exhaustion-Detector"),
    EventQuery(
        "boot_degradation",
        "boot_degradation_count",
        "Microsoft-Windows-Diagnostics-Performance/Operational",
        100,
        "Boot performance monitoring",
    ),
)


class EventCountCollector(BaseCollector):
    """Count events of one ID in one channel since the lookback start."""

    def __init__(self, query: EventQuery) -> None:
        self.event = query

    @property
    def name(self) -> str:
        return self.event.name

    @property
    def kind(self) -> str:
        return "event"

    @property
    def fields(self) -> tuple[str, ...]:
        return (self.event.field,)

    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        return backend.query_event_count(target, self.event.channel, self.event.event_id, start)

    def normalize(self, raw: Any) -> dict[str, Any]:
        return {self.event.field: as_count(raw)}

    def remote_spec(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "channel": self.event.channel,
            "event_id": self.event.event_id,
        }


def event_collectors() -> list[EventCountCollector]:
    return [EventCountCollector(q) for q in EVENT_QUERIES]
