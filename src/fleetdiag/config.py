from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .errors import ConfigError
from .models import TransportPreference


def _get_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_optional_str(name: str) -> str | None:
    raw = os.getenv(name)
    return raw or None


@dataclass(frozen=True, slots=True)
class Settings:
    service_name: str = field(default_factory=lambda: _get_str("SERVICE_NAME", "fleetdiag"))
    lookback_days: int = field(default_factory=lambda: _get_int("LOOKBACK_DAYS", 7))

    # Timeouts (seconds)
    precheck_timeout_seconds: float = field(
        default_factory=lambda: _get_float("PRECHECK_TIMEOUT_SECONDS", 2.0)
    )
    transport_probe_timeout_seconds: float = field(
        default_factory=lambda: _get_float("TRANSPORT_PROBE_TIMEOUT_SECONDS", 5.0)
    )
    remote_timeout_seconds: float = field(
        default_factory=lambda: _get_float("REMOTE_TIMEOUT_SECONDS", 120.0)
    )

    max_workers: int = field(default_factory=lambda: _get_int("MAX_WORKERS", 1))

    # Derived flag thresholds
    low_disk_percent: float = field(default_factory=lambda: _get_float("LOW_DISK_PERCENT", 15.0))
    low_ram_gb: float = field(default_factory=lambda: _get_float("LOW_RAM_GB", 2.0))
    high_crash_count: int = field(default_factory=lambda: _get_int("HIGH_CRASH_COUNT", 5))

    # Comparator heuristics
    crash_delta_threshold: int = field(
        default_factory=lambda: _get_int("CRASH_DELTA_THRESHOLD", 3)
    )

    powershell_exe: str = field(default_factory=lambda: _get_str("POWERSHELL_EXE", "powershell"))
    log_file: str | None = field(default_factory=lambda: _get_optional_str("LOG_FILE"))


settings = Settings()


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str
    password: str = field(default="", repr=False)


@dataclass(frozen=True, slots=True)
class CollectionOptions:
    """Per-run switches shared by every target in a batch."""

    lookback_days: int = field(default_factory=lambda: settings.lookback_days)
    transport: TransportPreference = TransportPreference.AUTO
    include_security: bool = False
    include_crash_artifacts: bool = False
    include_updates: bool = False
    fast: bool = False
    credentials: Credentials | None = None

    def __post_init__(self) -> None:
        if self.lookback_days < 0:
            raise ConfigError(
                code="invalid_lookback",
                message=f"lookback_days must be >= 0, got {self.lookback_days}",
            )

    def lookback_start(self, now: datetime) -> datetime:
        return now - timedelta(days=self.lookback_days)
