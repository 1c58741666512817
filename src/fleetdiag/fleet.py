"""Fleet-wide collection with per-target isolation."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import UTC, datetime

from .assembler import SnapshotAssembler
from .backends.base import RemoteBackend
from .config import CollectionOptions, Settings, settings
from .errors import ConfigError, FleetError
from .logging import ActivityLog, NullActivityLog
from .models import HostSnapshot

_DONE = object()


def validate_targets(targets: Iterable[str] | str) -> list[str]:
    """Normalise a target list; an empty list is a batch-level error."""
    if isinstance(targets, str):
        targets = [targets]
    names = [str(t).strip() for t in targets if t is not None and str(t).strip()]
    if not names:
        raise ConfigError(code="empty_targets", message="At least one target is required.")
    return names


class FleetRun:
    """One background collection run.

    Snapshots are queued as each target finishes; iterate the run to consume
    them in completion order. Each snapshot is handed out once: iterating a
    finished run again yields nothing. ``cancel`` stops the run and terminates
    any in-flight execution channel; snapshots already delivered are untouched.
    """

    def __init__(self, driver: FleetDriver, targets: list[str]) -> None:
        self._driver = driver
        self._queue: queue.Queue[object] = queue.Queue()
        self._cancel = threading.Event()
        self._delivered: list[HostSnapshot] = []
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fleetdiag-run")
        self.future: Future[list[HostSnapshot]] = self._executor.submit(self._run, targets)
        self._executor.shutdown(wait=False)

    def _run(self, targets: list[str]) -> list[HostSnapshot]:
        try:
            for snapshot in self._driver.iter_completed(targets, self._cancel):
                self._delivered.append(snapshot)
                self._queue.put(snapshot)
        finally:
            self._queue.put(_DONE)
        return list(self._delivered)

    def __iter__(self) -> Iterator[HostSnapshot]:
        while True:
            item = self._queue.get()
            if item is _DONE:
                # Leave the sentinel for the next consumer.
                self._queue.put(_DONE)
                return
            yield item  # type: ignore[misc]

    @property
    def delivered(self) -> list[HostSnapshot]:
        """Snapshots delivered so far, without waiting for the run to end."""
        return list(self._delivered)

    def cancel(self) -> None:
        self._cancel.set()
        self._driver.backend.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def done(self) -> bool:
        return self.future.done()

    def wait(self, timeout: float | None = None) -> list[HostSnapshot]:
        """Block until the run ends; return every snapshot it delivered."""
        return self.future.result(timeout=timeout)


class FleetDriver:
    """Produce exactly one ``HostSnapshot`` per requested target."""

    def __init__(
        self,
        backend: RemoteBackend,
        options: CollectionOptions | None = None,
        *,
        sink: ActivityLog | None = None,
        config: Settings = settings,
        max_workers: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.backend = backend
        self.options = options or CollectionOptions()
        self.sink = sink or NullActivityLog()
        self.config = config
        self.max_workers = max(1, max_workers if max_workers is not None else config.max_workers)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._assembler = SnapshotAssembler(
            backend, self.options, sink=self.sink, config=config, clock=self._clock
        )
        self._lock = threading.Lock()
        self._active: FleetRun | None = None

    def collect_one(self, target: str, cancel: threading.Event | None = None) -> HostSnapshot:
        """Collect *target*; never raises for a target-level failure."""
        try:
            return self._assembler.collect(target, cancel)
        except Exception as e:
            reason = str(e) or type(e).__name__
            self.sink.log(
                logging.ERROR, f"{target}: collection aborted: {reason}", target=target
            )
            return HostSnapshot.unreachable(target, reason, timestamp=self._clock())

    def collect(self, targets: Iterable[str] | str) -> list[HostSnapshot]:
        """Collect every target; results follow input order."""
        names = validate_targets(targets)
        self.sink.log(logging.INFO, f"Fleet collection started for {len(names)} target(s)")

        if self.max_workers == 1 or len(names) == 1:
            results = [self.collect_one(name) for name in names]
        else:
            workers = min(self.max_workers, len(names))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fleetdiag") as pool:
                results = list(pool.map(self.collect_one, names))

        self._log_summary(results)
        return results

    def iter_completed(
        self,
        targets: Iterable[str] | str,
        cancel: threading.Event | None = None,
    ) -> Iterator[HostSnapshot]:
        """Yield snapshots as targets finish (completion order).

        Validation happens before the first target is attempted.
        """
        names = validate_targets(targets)
        return self._iter_completed(names, cancel or threading.Event())

    def _iter_completed(self, names: list[str], cancel: threading.Event) -> Iterator[HostSnapshot]:
        if self.max_workers == 1:
            for name in names:
                if cancel.is_set():
                    return
                snapshot = self.collect_one(name, cancel)
                if cancel.is_set():
                    return
                yield snapshot
            return

        pool = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(names)), thread_name_prefix="fleetdiag"
        )
        try:
            futures = [pool.submit(self._collect_unless_cancelled, name, cancel) for name in names]
            for future in as_completed(futures):
                if cancel.is_set():
                    return
                snapshot = future.result()
                if snapshot is not None:
                    yield snapshot
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _collect_unless_cancelled(
        self, target: str, cancel: threading.Event
    ) -> HostSnapshot | None:
        if cancel.is_set():
            return None
        return self.collect_one(target, cancel)

    def start(self, targets: Iterable[str] | str) -> FleetRun:
        """Start a background run; at most one may be active per driver."""
        names = validate_targets(targets)
        with self._lock:
            if self._active is not None and not self._active.done():
                raise FleetError(
                    code="run_in_progress", message="A collection run is already in progress."
                )
            self._active = FleetRun(self, names)
            return self._active

    def _log_summary(self, results: list[HostSnapshot]) -> None:
        failed = sum(1 for r in results if not r.reachable)
        self.sink.log(
            logging.INFO,
            f"Fleet collection finished: {len(results) - failed} reachable, {failed} unreachable",
        )
