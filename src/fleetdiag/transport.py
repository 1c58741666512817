"""Per-target choice of remote-execution mechanism."""

from __future__ import annotations

import logging

from .backends.base import RemoteBackend
from .config import Credentials, settings
from .errors import ConfigError
from .logging import ActivityLog, NullActivityLog
from .models import Transport, TransportPreference


def parse_preference(value: str | TransportPreference) -> TransportPreference:
    """Accept ``auto``/``winrm``/``rpc`` in any case."""
    if isinstance(value, TransportPreference):
        return value
    for pref in TransportPreference:
        if pref.value.lower() == str(value).strip().lower():
            return pref
    choices = ", ".join(p.value for p in TransportPreference)
    raise ConfigError(code="unknown_transport", message=f"Unknown transport: {value}. Available: {choices}")


def select_transport(
    target: str,
    preference: TransportPreference | str,
    backend: RemoteBackend,
    *,
    credentials: Credentials | None = None,
    timeout: float | None = None,
    sink: ActivityLog | None = None,
) -> Transport:
    """Pick the transport for *target* without collecting anything.

    Forced preferences return immediately. ``Auto`` makes a single probe of
    the primary transport and falls back to ``RPC`` on any failure.
    """
    sink = sink or NullActivityLog()
    pref = parse_preference(preference)

    if pref is TransportPreference.WINRM:
        return Transport.WINRM
    if pref is TransportPreference.RPC:
        return Transport.RPC

    limit = timeout if timeout is not None else settings.transport_probe_timeout_seconds
    try:
        ok = backend.probe_transport(target, credentials, limit)
    except Exception as e:
        sink.log(
            logging.WARNING,
            f"{target}: WinRM probe failed ({e}); falling back to RPC",
            target=target,
            transport=str(Transport.RPC),
        )
        return Transport.RPC

    if not ok:
        sink.log(
            logging.WARNING,
            f"{target}: WinRM unavailable; falling back to RPC",
            target=target,
            transport=str(Transport.RPC),
        )
        return Transport.RPC

    sink.log(logging.INFO, f"{target}: using WinRM", target=target, transport=str(Transport.WINRM))
    return Transport.WINRM
