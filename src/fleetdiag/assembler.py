"""Per-target snapshot assembly.

Stages run in order and the first terminal state wins:

1. Precheck: network liveness. Failure ends the target as unreachable.
2. Transport selection.
3. Collection: one atomic bundle (WinRM) or independent queries (RPC).
4. Derivation: flags computed from the collected values only.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from .backends.base import RemoteBackend
from .collectors import BaseCollector, build_collectors
from .config import CollectionOptions, Credentials, Settings, settings
from .logging import ActivityLog, NullActivityLog
from .models import (
    CRASH_FAMILY_FIELDS,
    CollectionOutcome,
    Complete,
    HostSnapshot,
    Partial,
    Transport,
    Unreachable,
)
from .transport import select_transport


CANCELLED_REASON = "Collection cancelled"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def uptime_days(last_boot: datetime | None, now: datetime) -> float | None:
    """Fractional days between *last_boot* and *now*."""
    if last_boot is None:
        return None
    if last_boot.tzinfo is None:
        last_boot = last_boot.replace(tzinfo=UTC)
    seconds = max(0.0, (now - last_boot).total_seconds())
    return round(seconds / 86400, 2)


def derive_flags(values: dict[str, Any], config: Settings = settings) -> dict[str, bool]:
    """Risk flags from already-collected values. Never performs I/O."""
    free_pct = values.get("lowest_free_disk_percent")
    free_ram = values.get("free_ram_gb")
    crashes = sum(values.get(name) or 0 for name in CRASH_FAMILY_FIELDS)
    return {
        "low_disk": free_pct is not None and free_pct < config.low_disk_percent,
        "low_ram": free_ram is not None and free_ram < config.low_ram_gb,
        "high_crash": crashes >= config.high_crash_count,
    }


def run_bundle(
    backend: RemoteBackend,
    target: str,
    credentials: Credentials | None,
    collectors: Sequence[BaseCollector],
    start: datetime,
    sink: ActivityLog,
) -> CollectionOutcome:
    """Run every collector as one remote execution.

    The channel is the unit of atomicity: if it fails, nothing is kept.
    """
    args = {
        "start": start.isoformat(),
        "collectors": [c.remote_spec() for c in collectors],
    }
    try:
        payload = backend.execute_remote(target, Transport.WINRM, credentials, "collect", args)
    except Exception as e:
        return Unreachable(reason=f"Remote execution failed: {e}")

    raw_values = payload.get("values") or {}
    raw_errors = payload.get("errors") or {}

    values: dict[str, Any] = {}
    errors: dict[str, str] = {}
    for collector in collectors:
        if collector.name in raw_errors:
            message = str(raw_errors[collector.name])
        elif collector.name not in raw_values:
            message = "no value returned"
        else:
            try:
                values.update(collector.normalize(raw_values[collector.name]))
                continue
            except (TypeError, ValueError, KeyError) as e:
                message = f"unusable value: {e}"

        errors[collector.name] = message
        values.update(collector.empty())
        sink.log(
            logging.WARNING,
            f"{target}: collector {collector.name} failed: {message}",
            target=target,
            collector=collector.name,
        )

    if errors:
        return Partial(values=values, errors=errors)
    return Complete(values=values)


def run_queries(
    backend: RemoteBackend,
    target: str,
    collectors: Sequence[BaseCollector],
    start: datetime,
    sink: ActivityLog,
    cancel: threading.Event | None = None,
) -> CollectionOutcome:
    """Run each collector as its own query. Failures stay local to one field.

    A set *cancel* event stops the loop before the next query is issued.
    """
    values: dict[str, Any] = {}
    errors: dict[str, str] = {}
    for collector in collectors:
        if cancel is not None and cancel.is_set():
            return Unreachable(reason=CANCELLED_REASON)
        try:
            values.update(collector.collect(backend, target, start))
        except Exception as e:
            errors[collector.name] = str(e) or type(e).__name__
            values.update(collector.empty())
            sink.log(
                logging.WARNING,
                f"{target}: collector {collector.name} failed: {errors[collector.name]}",
                target=target,
                collector=collector.name,
            )

    if errors:
        return Partial(values=values, errors=errors)
    return Complete(values=values)


class SnapshotAssembler:
    """Collect one target into a ``HostSnapshot``."""

    def __init__(
        self,
        backend: RemoteBackend,
        options: CollectionOptions | None = None,
        *,
        sink: ActivityLog | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.backend = backend
        self.options = options or CollectionOptions()
        self.sink = sink or NullActivityLog()
        self.config = config
        self.clock = clock

    def _precheck(self, target: str) -> str | None:
        """Return a failure reason, or ``None`` when the target answered."""
        try:
            alive = self.backend.probe_connectivity(target, self.config.precheck_timeout_seconds)
        except Exception as e:
            return f"Connectivity check failed: {e}"
        if not alive:
            return "Unreachable (no response to connectivity check)"
        return None

    def collect(self, target: str, cancel: threading.Event | None = None) -> HostSnapshot:
        """Run every stage for *target*.

        Once *cancel* is set no further remote call is started; the target
        ends as unreachable with ``CANCELLED_REASON``.
        """
        cancel = cancel or threading.Event()
        now = self.clock()
        start = self.options.lookback_start(now)
        self.sink.log(logging.INFO, f"{target}: collection started", target=target)

        reason = self._precheck(target)
        if reason is not None:
            self.sink.log(logging.WARNING, f"{target}: {reason}", target=target)
            return HostSnapshot.unreachable(target, reason, timestamp=now)
        if cancel.is_set():
            return HostSnapshot.unreachable(target, CANCELLED_REASON, timestamp=now)

        try:
            transport = select_transport(
                target,
                self.options.transport,
                self.backend,
                credentials=self.options.credentials,
                timeout=self.config.transport_probe_timeout_seconds,
                sink=self.sink,
            )
        except Exception as e:
            reason = f"Transport selection failed: {e}"
            self.sink.log(logging.ERROR, f"{target}: {reason}", target=target)
            return HostSnapshot.unreachable(target, reason, timestamp=now)

        collectors = build_collectors(self.options)
        if cancel.is_set():
            outcome: CollectionOutcome = Unreachable(reason=CANCELLED_REASON)
        elif transport is Transport.WINRM:
            outcome = run_bundle(
                self.backend, target, self.options.credentials, collectors, start, self.sink
            )
        else:
            outcome = run_queries(self.backend, target, collectors, start, self.sink, cancel)

        if isinstance(outcome, Unreachable):
            self.sink.log(
                logging.ERROR,
                f"{target}: {outcome.reason}",
                target=target,
                transport=str(transport),
            )
            return HostSnapshot.unreachable(
                target, outcome.reason, timestamp=now, transport=transport
            )

        return self._assemble(target, now, transport, outcome)

    def _assemble(
        self,
        target: str,
        now: datetime,
        transport: Transport,
        outcome: Partial | Complete,
    ) -> HostSnapshot:
        values = dict(outcome.values)
        errors = outcome.errors if isinstance(outcome, Partial) else {}

        values["uptime_days"] = uptime_days(values.get("last_boot"), now)
        values.update(derive_flags(values, self.config))

        snapshot = HostSnapshot(
            target=target,
            timestamp=now,
            reachable=True,
            transport=transport,
            metric_errors=tuple(sorted(errors.items())),
            **values,
        )
        self.sink.log(
            logging.INFO,
            f"{target}: collection complete via {transport}"
            + (f" ({len(errors)} metric(s) unavailable)" if errors else ""),
            target=target,
            transport=str(transport),
        )
        return snapshot
