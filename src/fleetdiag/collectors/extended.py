"""Optional collectors: endpoint protection, crash artifacts, updates.

These only run when requested and are always skipped in fast mode.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..backends.base import RemoteBackend
from ..models import parse_datetime
from .base import BaseCollector, as_count


class ProtectionCollector(BaseCollector):
    """Last quick scan and recent detections from endpoint protection."""

    optional = True

    @property
    def name(self) -> str:
        return "protection"

    @property
    def kind(self) -> str:
        return "protection"

    @property
    def fields(self) -> tuple[str, ...]:
        return ("defender_last_quick_scan", "defender_detections")

    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        return backend.query_protection_status(target, start)

    def normalize(self, raw: Any) -> dict[str, Any]:
        if not isinstance(raw, dict):
            raise TypeError(f"protection status must be a mapping, got {type(raw).__name__}")
        return {
            "defender_last_quick_scan": parse_datetime(raw.get("last_quick_scan")),
            "defender_detections": as_count(raw.get("detections")),
        }


class _CountCollector(BaseCollector):
    optional = True
    _name = ""
    _field = ""

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> str:
        return self._name

    @property
    def fields(self) -> tuple[str, ...]:
        return (self._field,)

    def normalize(self, raw: Any) -> dict[str, Any]:
        return {self._field: as_count(raw)}


class FaultReportCollector(_CountCollector):
    """Archived Windows Error Reporting reports."""

    _name = "fault_reports"
    _field = "fault_report_count"

    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        return backend.count_fault_reports(target)


class CrashDumpCollector(_CountCollector):
    """Minidumps plus a full memory dump, if present."""

    _name = "crash_dumps"
    _field = "crash_dump_count"

    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        return backend.count_crash_dumps(target)


class UpdateCollector(_CountCollector):
    """Updates installed within the lookback window."""

    _name = "updates"
    _field = "recent_update_count"

    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        return backend.count_updates(target, start)
