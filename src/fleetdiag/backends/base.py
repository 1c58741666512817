"""Base backend interface.

A backend is the narrow capability set the collection pipeline talks to:
liveness checks, transport negotiation, remote execution and the
individual queries of the fallback path.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from ..config import Credentials
from ..errors import QueryError
from ..models import CounterSample, Transport


class RemoteBackend(ABC):
    """Abstract base class for management backends."""

    # Shortest sampling interval (seconds) ``sample_counters`` can honour.
    min_sample_interval: float = 0.0

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def probe_connectivity(self, target: str, timeout: float) -> bool:
        """Network-layer liveness check."""
        ...

    @abstractmethod
    def probe_transport(
        self, target: str, credentials: Credentials | None, timeout: float
    ) -> bool:
        """Lightweight negotiation of the primary transport (no full session)."""
        ...

    @abstractmethod
    def execute_remote(
        self,
        target: str,
        transport: Transport,
        credentials: Credentials | None,
        operation: str,
        args: dict[str, Any],
    ) -> dict[str, Any]:
        """Run one atomic bundle on the target.

        Raises ``ChannelError`` when the channel itself fails. Per-collector
        failures inside the bundle are reported in the returned payload.
        """
        ...

    @abstractmethod
    def query_event_count(
        self, target: str, channel: str, event_id: int, start: datetime
    ) -> int:
        ...

    @abstractmethod
    def query_host_facts(self, target: str) -> dict[str, Any]:
        """Return ``domain``, ``os_name``, ``os_build``, ``last_boot``,
        ``total_memory_bytes`` and ``free_memory_bytes``."""
        ...

    @abstractmethod
    def query_volumes(self, target: str) -> list[tuple[float, float]]:
        """Return ``(size, free)`` for each fixed volume."""
        ...

    @abstractmethod
    def sample_counters(
        self,
        target: str,
        counter_paths: Sequence[str],
        interval: float,
        max_samples: int,
        credentials: Credentials | None,
    ) -> list[CounterSample]:
        ...

    # Optional collectors on the query path. Backends that cannot answer
    # leave these alone and the fields stay null.

    def query_protection_status(self, target: str, start: datetime) -> dict[str, Any]:
        raise QueryError(code="unsupported", message=f"{self.name}: protection status unsupported")

    def count_fault_reports(self, target: str) -> int:
        raise QueryError(code="unsupported", message=f"{self.name}: fault reports unsupported")

    def count_crash_dumps(self, target: str) -> int:
        raise QueryError(code="unsupported", message=f"{self.name}: crash dumps unsupported")

    def count_updates(self, target: str, start: datetime) -> int:
        raise QueryError(code="unsupported", message=f"{self.name}: update history unsupported")

    def cancel(self) -> None:
        """Terminate in-flight execution channels. No-op by default."""
        return None
