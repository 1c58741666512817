"""Shared fixtures: a scriptable backend and a fixed clock."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from fleetdiag.backends.base import RemoteBackend
from fleetdiag.config import Credentials
from fleetdiag.errors import ChannelError, QueryError
from fleetdiag.models import CounterSample, Transport

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=UTC)

GOOD_FACTS: dict[str, Any] = {
    "domain": "corp.example",
    "os_name": "Microsoft Windows 11 Enterprise",
    "os_build": "10.0.22631",
    "last_boot": (NOW - timedelta(days=3)).isoformat(),
    "total_memory_bytes": 16 * 1024**3,
    "free_memory_bytes": 8 * 1024**3,
}


class FakeBackend(RemoteBackend):
    """In-memory backend; per-target behaviour comes from plain dicts.

    ``unreachable`` and ``winrm`` map target names to probe answers; an
    exception instance as a value is raised instead of returned.
    """

    def __init__(
        self,
        *,
        unreachable: Sequence[str] = (),
        winrm: dict[str, Any] | None = None,
        facts: dict[str, Any] | None = None,
        volumes: dict[str, Any] | None = None,
        events: dict[tuple[str, int], Any] | None = None,
        bundle: dict[str, Any] | None = None,
        counters: dict[str, Any] | None = None,
        boom: dict[str, Exception] | None = None,
    ) -> None:
        self.unreachable = set(unreachable)
        self.winrm = winrm or {}
        self.facts = facts or {}
        self.volumes = volumes or {}
        self.events = events or {}
        self.bundle = bundle or {}
        self.counters = counters or {}
        self.boom = boom or {}
        self.calls: list[tuple[str, str]] = []
        self.cancelled = False
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fake"

    def _record(self, op: str, target: str) -> None:
        with self._lock:
            self.calls.append((op, target))

    def calls_for(self, op: str) -> list[str]:
        return [target for name, target in self.calls if name == op]

    @staticmethod
    def _answer(value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return value

    def probe_connectivity(self, target: str, timeout: float) -> bool:
        self._record("probe_connectivity", target)
        if target in self.boom:
            raise self.boom[target]
        return target not in self.unreachable

    def probe_transport(
        self, target: str, credentials: Credentials | None, timeout: float
    ) -> bool:
        self._record("probe_transport", target)
        return self._answer(self.winrm.get(target, False))

    def execute_remote(
        self,
        target: str,
        transport: Transport,
        credentials: Credentials | None,
        operation: str,
        args: dict[str, Any],
    ) -> dict[str, Any]:
        self._record("execute_remote", target)
        if target not in self.bundle:
            raise ChannelError(code="unsupported", message="no bundle configured")
        return self._answer(self.bundle[target])

    def query_event_count(
        self, target: str, channel: str, event_id: int, start: datetime
    ) -> int:
        self._record("query_event_count", target)
        return self._answer(self.events.get((channel, event_id), 0))

    def query_host_facts(self, target: str) -> dict[str, Any]:
        self._record("query_host_facts", target)
        return self._answer(self.facts.get(target, GOOD_FACTS))

    def query_volumes(self, target: str) -> list[tuple[float, float]]:
        self._record("query_volumes", target)
        return self._answer(self.volumes.get(target, [(100.0, 50.0)]))

    def sample_counters(
        self,
        target: str,
        counter_paths: Sequence[str],
        interval: float,
        max_samples: int,
        credentials: Credentials | None,
    ) -> list[CounterSample]:
        self._record("sample_counters", target)
        if target in self.counters:
            return self._answer(self.counters[target])
        return [
            CounterSample(target=target, timestamp=NOW, counter=path, value=float(i + 1))
            for i in range(max_samples)
            for path in counter_paths
        ]

    def count_fault_reports(self, target: str) -> int:
        self._record("count_fault_reports", target)
        return 2

    def count_crash_dumps(self, target: str) -> int:
        self._record("count_crash_dumps", target)
        raise QueryError(code="denied", message="access denied")

    def cancel(self) -> None:
        self.cancelled = True


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
