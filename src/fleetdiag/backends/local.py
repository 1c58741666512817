"""psutil-backed collection for the machine fleetdiag runs on."""

from __future__ import annotations

import os
import platform
import socket
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

import psutil

from ..config import Credentials
from ..errors import ChannelError, QueryError
from ..models import CounterSample, Transport
from .base import RemoteBackend

_MB = 1024 * 1024

# Partition options that mark non-fixed media.
_NON_FIXED_OPTS = ("cdrom", "removable")


def _load_1m() -> float:
    try:
        return float(os.getloadavg()[0])
    except (AttributeError, OSError) as e:
        raise QueryError(code="unsupported", message="load average unavailable") from e


COUNTER_READERS: dict[str, Callable[[], float]] = {
    r"\Processor(_Total)\% Processor Time": lambda: float(psutil.cpu_percent(interval=None)),
    r"\Memory\Available MBytes": lambda: psutil.virtual_memory().available / _MB,
    r"\Memory\% Committed Bytes In Use": lambda: float(psutil.virtual_memory().percent),
    r"\System\Processor Queue Length": _load_1m,
}


def _local_names() -> set[str]:
    hostname = socket.gethostname()
    names = {"localhost", "127.0.0.1", "::1", ".", hostname.lower()}
    names.add(hostname.split(".")[0].lower())
    try:
        names.add(socket.getfqdn().lower())
    except OSError:
        pass
    return names


class LocalBackend(RemoteBackend):
    """Answer for the local host only.

    Remote execution and event-log queries are not available, so collection
    always runs on the query path with null event counts.
    """

    @property
    def name(self) -> str:
        return "local"

    def is_local(self, target: str) -> bool:
        return target.strip().lower() in _local_names()

    def _require_local(self, target: str) -> None:
        if not self.is_local(target):
            raise QueryError(code="not_local", message=f"{target} is not the local host")

    def probe_connectivity(self, target: str, timeout: float) -> bool:
        return self.is_local(target)

    def probe_transport(
        self, target: str, credentials: Credentials | None, timeout: float
    ) -> bool:
        return False

    def execute_remote(
        self,
        target: str,
        transport: Transport,
        credentials: Credentials | None,
        operation: str,
        args: dict[str, Any],
    ) -> dict[str, Any]:
        raise ChannelError(
            code="unsupported", message="remote execution is not available for local collection"
        )

    def query_event_count(
        self, target: str, channel: str, event_id: int, start: datetime
    ) -> int:
        raise QueryError(
            code="unsupported",
            message=f"event log {channel!r} cannot be queried by the local backend",
        )

    def query_host_facts(self, target: str) -> dict[str, Any]:
        self._require_local(target)
        vm = psutil.virtual_memory()
        fqdn = socket.getfqdn()
        domain = fqdn.split(".", 1)[1] if "." in fqdn else None
        return {
            "domain": domain,
            "os_name": f"{platform.system()} {platform.release()}".strip(),
            "os_build": platform.version(),
            "last_boot": datetime.fromtimestamp(psutil.boot_time(), tz=UTC),
            "total_memory_bytes": int(vm.total),
            "free_memory_bytes": int(vm.available),
        }

    def query_volumes(self, target: str) -> list[tuple[float, float]]:
        self._require_local(target)
        volumes: list[tuple[float, float]] = []
        for part in psutil.disk_partitions(all=False):
            opts = part.opts.split(",") if part.opts else []
            if any(opt in _NON_FIXED_OPTS for opt in opts):
                continue
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, OSError):
                continue
            volumes.append((float(usage.total), float(usage.free)))
        return volumes

    def sample_counters(
        self,
        target: str,
        counter_paths: Sequence[str],
        interval: float,
        max_samples: int,
        credentials: Credentials | None,
    ) -> list[CounterSample]:
        self._require_local(target)
        unknown = [path for path in counter_paths if path not in COUNTER_READERS]
        if unknown:
            raise QueryError(
                code="unknown_counter",
                message=f"unsupported counter(s): {', '.join(unknown)}",
            )

        # Prime cpu_percent so the first reading covers the first interval.
        psutil.cpu_percent(interval=None)

        samples: list[CounterSample] = []
        for _ in range(max_samples):
            time.sleep(interval)
            ts = datetime.now(UTC)
            for path in counter_paths:
                samples.append(
                    CounterSample(
                        target=target,
                        timestamp=ts,
                        counter=path,
                        value=COUNTER_READERS[path](),
                    )
                )
        return samples
