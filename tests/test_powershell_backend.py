"""Tests for the PowerShell backend (subprocess is mocked)."""

from __future__ import annotations

import json
import subprocess
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from fleetdiag.backends.powershell import PowerShellBackend, build_bundle_script, ps_quote
from fleetdiag.collectors import build_collectors
from fleetdiag.config import CollectionOptions, Credentials
from fleetdiag.errors import ChannelError, QueryError
from fleetdiag.models import Transport

START = datetime(2024, 5, 13, 12, 0, tzinfo=UTC)


def _proc(stdout: str = "", stderr: str = "", returncode: int = 0) -> MagicMock:
    proc = MagicMock()
    proc.communicate.return_value = (stdout, stderr)
    proc.returncode = returncode
    proc.pid = 4242
    return proc


def test_ps_quote_escapes_single_quotes() -> None:
    assert ps_quote("O'Brien") == "'O''Brien'"


def test_bundle_script_runs_each_collector_in_isolation() -> None:
    specs = [c.remote_spec() for c in build_collectors(CollectionOptions())]
    script = build_bundle_script("pc1", specs, START.isoformat())

    assert "Invoke-Command @p" in script
    assert "ComputerName = 'pc1'" in script
    assert "-LogName 'System' -Id 41" in script
    assert "-LogName 'Application' -Id 1000" in script
    assert script.count("$errors[") == len(specs)
    assert "NoMatchingEventsFound" in script
    assert "ConvertTo-Json" in script


def test_bundle_block_stops_on_remote_errors() -> None:
    specs = [c.remote_spec() for c in build_collectors(CollectionOptions(include_crash_artifacts=True))]
    script = build_bundle_script("pc1", specs, START.isoformat())
    block = script.split("-ScriptBlock {", 1)[1]

    assert block.lstrip().startswith("param($StartIso)")
    assert "$ErrorActionPreference = 'Stop'" in block
    assert "Test-Path" not in block
    assert "ItemNotFoundException" in block


def test_bundle_script_rejects_unknown_kind() -> None:
    with pytest.raises(ChannelError):
        build_bundle_script("pc1", [{"name": "x", "kind": "registry"}], START.isoformat())


def test_execute_remote_parses_payload() -> None:
    payload = {"values": {"app_crash": 3}, "errors": {"disk": "Access denied"}}
    with patch("subprocess.Popen", return_value=_proc(json.dumps(payload))) as popen:
        result = PowerShellBackend("pwsh").execute_remote(
            "pc1", Transport.WINRM, None, "collect", {"start": START.isoformat(), "collectors": []}
        )
    assert result == payload
    cmd = popen.call_args.args[0]
    assert cmd == ["pwsh", "-NoProfile", "-NonInteractive", "-Command", "-"]


def test_execute_remote_requires_winrm() -> None:
    with pytest.raises(ChannelError):
        PowerShellBackend().execute_remote("pc1", Transport.RPC, None, "collect", {})


def test_credentials_travel_by_environment() -> None:
    creds = Credentials(username="CORP\\svc", password="s3cret")
    with patch("subprocess.Popen", return_value=_proc("ok")) as popen:
        assert PowerShellBackend().probe_transport("pc1", creds, 5.0) is True
    env = popen.call_args.kwargs["env"]
    assert env["FLEETDIAG_REMOTE_USER"] == "CORP\\svc"
    assert env["FLEETDIAG_REMOTE_PASSWORD"] == "s3cret"
    script = popen.return_value.communicate.call_args.args[0]
    assert "s3cret" not in script
    assert "s3cret" not in repr(creds)


def test_nonzero_exit_is_channel_error() -> None:
    with patch("subprocess.Popen", return_value=_proc("", "WinRM cannot complete the operation", 1)):
        with pytest.raises(ChannelError) as exc:
            PowerShellBackend().probe_transport("pc1", None, 5.0)
    assert exc.value.code == "powershell_failed"
    assert "WinRM cannot complete" in exc.value.message


def test_timeout_kills_process() -> None:
    proc = _proc()
    proc.communicate.side_effect = [subprocess.TimeoutExpired("pwsh", 5), ("", "")]
    with patch("subprocess.Popen", return_value=proc):
        with pytest.raises(ChannelError) as exc:
            PowerShellBackend().run_script("Start-Sleep 60", timeout=5)
    assert exc.value.code == "timeout"
    proc.kill.assert_called_once()


def test_missing_executable() -> None:
    with patch("subprocess.Popen", side_effect=FileNotFoundError("pwsh")):
        with pytest.raises(ChannelError) as exc:
            PowerShellBackend("pwsh").run_script("1")
    assert exc.value.code == "powershell_missing"


def test_query_event_count_and_errors() -> None:
    backend = PowerShellBackend()
    with patch("subprocess.Popen", return_value=_proc("7\r\n")):
        assert backend.query_event_count("pc1", "System", 6008, START) == 7
    with patch("subprocess.Popen", return_value=_proc("", "The RPC server is unavailable", 1)):
        with pytest.raises(QueryError):
            backend.query_event_count("pc1", "System", 6008, START)
    with patch("subprocess.Popen", return_value=_proc("garbage")):
        with pytest.raises(QueryError):
            backend.query_event_count("pc1", "System", 6008, START)


def test_query_volumes_single_object() -> None:
    with patch("subprocess.Popen", return_value=_proc('{"size": 200.0, "free": 50.0}')):
        assert PowerShellBackend().query_volumes("pc1") == [(200.0, 50.0)]


def test_probe_connectivity() -> None:
    with patch("subprocess.Popen", return_value=_proc("True\r\n")):
        assert PowerShellBackend().probe_connectivity("pc1", 2.0) is True
    with patch("subprocess.Popen", return_value=_proc("False\r\n")):
        assert PowerShellBackend().probe_connectivity("pc1", 2.0) is False


def test_sample_counters_parses_rows() -> None:
    rows = [
        {"ts": "2024-05-20T12:00:05.0000000Z", "path": "\\\\pc1\\memory\\available mbytes", "value": 2048.5},
        {"ts": "2024-05-20T12:00:10.0000000Z", "path": "\\\\pc1\\memory\\available mbytes", "value": 2000.0},
    ]
    with patch("subprocess.Popen", return_value=_proc(json.dumps(rows))):
        samples = PowerShellBackend().sample_counters(
            "pc1", [r"\Memory\Available MBytes"], 5.0, 2, None
        )
    assert [s.value for s in samples] == [2048.5, 2000.0]
    assert samples[0].timestamp == datetime(2024, 5, 20, 12, 0, 5, tzinfo=UTC)


def test_cancel_kills_running_processes() -> None:
    backend = PowerShellBackend()
    proc = _proc()
    backend._running.add(proc)
    backend.cancel()
    proc.kill.assert_called_once()


@pytest.mark.parametrize("method", ["count_fault_reports", "count_crash_dumps"])
def test_admin_share_access_is_checked_before_counting(method) -> None:
    with patch("subprocess.Popen", return_value=_proc("3\r\n")) as popen:
        assert getattr(PowerShellBackend(), method)("pc1") == 3
    script = popen.return_value.communicate.call_args.args[0]

    assert "Get-Item -LiteralPath '\\\\pc1\\C$' -ErrorAction Stop" in script
    assert "Test-Path" not in script
    assert "catch [System.Management.Automation.ItemNotFoundException]" in script


def test_admin_share_denied_is_query_error() -> None:
    denied = _proc("", "Access is denied", 1)
    with patch("subprocess.Popen", return_value=denied):
        with pytest.raises(QueryError) as exc:
            PowerShellBackend().count_fault_reports("pc1")
    assert "Access is denied" in exc.value.message


def test_sample_counters_rejects_sub_second_interval() -> None:
    with patch("subprocess.Popen") as popen:
        with pytest.raises(QueryError) as exc:
            PowerShellBackend().sample_counters("pc1", [r"\Memory\Available MBytes"], 0.5, 20, None)
    assert exc.value.code == "invalid_interval"
    popen.assert_not_called()


def test_sample_counters_keeps_run_length_when_rounding() -> None:
    with patch("subprocess.Popen", return_value=_proc("[]")) as popen:
        PowerShellBackend().sample_counters("pc1", [r"\Memory\Available MBytes"], 1.5, 4, None)
    script = popen.return_value.communicate.call_args.args[0]

    assert "-SampleInterval 2 -MaxSamples 3" in script
