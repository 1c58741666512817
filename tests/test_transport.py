"""Tests for transport selection."""

from __future__ import annotations

import logging

import pytest
from conftest import FakeBackend

from fleetdiag.errors import ConfigError
from fleetdiag.logging import RecordingActivityLog
from fleetdiag.models import Transport, TransportPreference
from fleetdiag.transport import parse_preference, select_transport


def test_forced_rpc_never_probes() -> None:
    backend = FakeBackend(winrm={"pc1": True})
    assert select_transport("pc1", TransportPreference.RPC, backend) is Transport.RPC
    assert backend.calls_for("probe_transport") == []


def test_forced_winrm_never_probes() -> None:
    backend = FakeBackend()
    assert select_transport("pc1", "winrm", backend) is Transport.WINRM
    assert backend.calls_for("probe_transport") == []


def test_auto_uses_winrm_when_probe_succeeds() -> None:
    backend = FakeBackend(winrm={"pc1": True})
    assert select_transport("pc1", "auto", backend) is Transport.WINRM
    assert backend.calls_for("probe_transport") == ["pc1"]


def test_auto_falls_back_when_probe_fails() -> None:
    sink = RecordingActivityLog()
    backend = FakeBackend(winrm={"pc1": False})
    assert select_transport("pc1", TransportPreference.AUTO, backend, sink=sink) is Transport.RPC
    assert any("falling back" in m for m in sink.messages(logging.WARNING))


def test_auto_falls_back_when_probe_raises() -> None:
    backend = FakeBackend(winrm={"pc1": TimeoutError("no listener")})
    assert select_transport("pc1", "Auto", backend) is Transport.RPC
    assert backend.calls_for("probe_transport") == ["pc1"]


def test_parse_preference_is_case_insensitive() -> None:
    assert parse_preference("WINRM") is TransportPreference.WINRM
    assert parse_preference(" rpc ") is TransportPreference.RPC
    assert parse_preference(TransportPreference.AUTO) is TransportPreference.AUTO


def test_parse_preference_rejects_unknown() -> None:
    with pytest.raises(ConfigError) as exc:
        parse_preference("ssh")
    assert exc.value.code == "unknown_transport"
