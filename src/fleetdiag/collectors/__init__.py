"""Metric collectors."""

from __future__ import annotations

from ..config import CollectionOptions
from .base import BaseCollector
from .disk import DiskCollector, lowest_free_percent
from .events import EVENT_QUERIES, EventCountCollector, EventQuery, event_collectors
from .extended import CrashDumpCollector, FaultReportCollector, ProtectionCollector, UpdateCollector
from .system import HostFactsCollector

__all__ = [
    "EVENT_QUERIES",
    "BaseCollector",
    "CrashDumpCollector",
    "DiskCollector",
    "EventCountCollector",
    "EventQuery",
    "FaultReportCollector",
    "HostFactsCollector",
    "ProtectionCollector",
    "UpdateCollector",
    "build_collectors",
    "event_collectors",
    "lowest_free_percent",
]


def build_collectors(options: CollectionOptions) -> list[BaseCollector]:
    """Required collectors first, then the optional ones the options enable.

    Fast mode drops every optional collector regardless of its flag.
    """
    collectors: list[BaseCollector] = [
        HostFactsCollector(),
        DiskCollector(),
        *event_collectors(),
    ]

    if options.fast:
        return collectors

    if options.include_security:
        collectors.append(ProtectionCollector())

    if options.include_crash_artifacts:
        collectors.append(FaultReportCollector())
        collectors.append(CrashDumpCollector())

    if options.include_updates:
        collectors.append(UpdateCollector())

    return collectors
