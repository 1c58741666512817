"""Base collector interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ..backends.base import RemoteBackend


class BaseCollector(ABC):
    """Abstract base class for all metric collectors.

    A collector has two halves: ``query`` fetches a raw value through the
    backend (fallback path) and ``normalize`` turns a raw value into snapshot
    fields. On the remote-execution path the raw value comes back from the
    bundle and only ``normalize`` runs locally.
    """

    optional: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Collector name used as key in bundles and error reports."""
        ...

    @property
    @abstractmethod
    def kind(self) -> str:
        """Which remote script implements this collector."""
        ...

    @property
    @abstractmethod
    def fields(self) -> tuple[str, ...]:
        """Snapshot fields this collector fills."""
        ...

    @abstractmethod
    def query(self, backend: RemoteBackend, target: str, start: datetime) -> Any:
        ...

    @abstractmethod
    def normalize(self, raw: Any) -> dict[str, Any]:
        ...

    def collect(self, backend: RemoteBackend, target: str, start: datetime) -> dict[str, Any]:
        return self.normalize(self.query(backend, target, start))

    def empty(self) -> dict[str, Any]:
        return dict.fromkeys(self.fields)

    def remote_spec(self) -> dict[str, Any]:
        return {"name": self.name, "kind": self.kind}


def as_count(raw: Any) -> int | None:
    """Coerce a raw count; ``None`` stays ``None``."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise TypeError(f"expected a count, got {raw!r}")
    count = int(raw)
    if count < 0:
        raise ValueError(f"negative count {count}")
    return count
