"""Windows management through a local PowerShell process.

Every call spawns ``powershell -NoProfile -NonInteractive -Command -`` and
feeds the script on stdin. Results come back as JSON on stdout.

Primary transport: one ``Invoke-Command`` bundle over WinRM.
Secondary transport: DCOM CIM sessions, ``Get-WinEvent -ComputerName`` and
admin shares, one query per call.
"""

from __future__ import annotations

import json
import logging
import math
import os
import subprocess
import threading
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from ..config import Credentials, settings
from ..errors import ChannelError, QueryError
from ..models import CounterSample, Transport, parse_datetime
from .base import RemoteBackend

log = logging.getLogger(__name__)

_USER_ENV = "FLEETDIAG_REMOTE_USER"
_PASS_ENV = "FLEETDIAG_REMOTE_PASSWORD"

# Builds $cred from environment variables so secrets never appear in argv.
_CREDENTIAL_PRELUDE = f"""
$ErrorActionPreference = 'Stop'
$ProgressPreference = 'SilentlyContinue'
$cred = $null
if ($env:{_USER_ENV}) {{
    $secure = ConvertTo-SecureString $env:{_PASS_ENV} -AsPlainText -Force
    $cred = New-Object System.Management.Automation.PSCredential($env:{_USER_ENV}, $secure)
}}
"""

_EVENT_COUNT_FUNCTION = """
function Get-EventCount([string]$LogName, [int]$Id, [datetime]$Since, [string]$Computer) {
    $filter = @{ LogName = $LogName; Id = $Id; StartTime = $Since }
    $params = @{ FilterHashtable = $filter; ErrorAction = 'Stop' }
    if ($Computer) { $params.ComputerName = $Computer; if ($cred) { $params.Credential = $cred } }
    try {
        @(Get-WinEvent @params).Count
    } catch {
        if ($_.FullyQualifiedErrorId -like 'NoMatchingEventsFound*') { 0 } else { throw }
    }
}
"""

# Only a missing item counts as absent. Any other failure (access denied,
# share offline) is thrown so the field stays null instead of reading 0.
_FILE_COUNT_FUNCTIONS = """
function Test-ItemPresent([string]$Path) {
    try {
        $null = Get-Item -LiteralPath $Path -Force -ErrorAction Stop
        $true
    } catch [System.Management.Automation.ItemNotFoundException] {
        $false
    }
}
function Get-ItemCount([string]$Path, [string]$Filter, [switch]$Directory) {
    if (-not (Test-ItemPresent $Path)) { return 0 }
    $params = @{ LiteralPath = $Path; Force = $true; ErrorAction = 'Stop' }
    if ($Filter) { $params.Filter = $Filter }
    if ($Directory) { $params.Directory = $true } else { $params.File = $true }
    @(Get-ChildItem @params).Count
}
"""

# Snippets evaluated on the remote host inside the Invoke-Command bundle.
# Each one leaves its raw value in $v.
_REMOTE_SNIPPETS: dict[str, str] = {
    "host": """
        $os = Get-CimInstance Win32_OperatingSystem
        $cs = Get-CimInstance Win32_ComputerSystem
        $v = @{
            domain = $cs.Domain
            os_name = $os.Caption
            os_build = $os.Version
            last_boot = $os.LastBootUpTime.ToUniversalTime().ToString('o')
            total_memory_bytes = [int64]$os.TotalVisibleMemorySize * 1024
            free_memory_bytes = [int64]$os.FreePhysicalMemory * 1024
        }
    """,
    "disk": """
        $v = @(Get-CimInstance Win32_LogicalDisk -Filter 'DriveType=3' |
            ForEach-Object { ,@([double]$_.Size, [double]$_.FreeSpace) })
    """,
    "protection": """
        $mp = Get-MpComputerStatus
        $scan = $null
        if ($mp.QuickScanEndTime) { $scan = $mp.QuickScanEndTime.ToUniversalTime().ToString('o') }
        $v = @{
            last_quick_scan = $scan
            detections = @(Get-MpThreatDetection | Where-Object { $_.InitialDetectionTime -ge $start }).Count
        }
    """,
    "fault_reports": """
        $root = (Get-Item -LiteralPath $env:ProgramData -Force -ErrorAction Stop).FullName
        $v = Get-ItemCount (Join-Path $root 'Microsoft\\Windows\\WER\\ReportArchive') -Directory
    """,
    "crash_dumps": """
        $root = (Get-Item -LiteralPath $env:SystemRoot -Force -ErrorAction Stop).FullName
        $v = Get-ItemCount (Join-Path $root 'Minidump') -Filter '*.dmp'
        if (Test-ItemPresent (Join-Path $root 'MEMORY.DMP')) { $v += 1 }
    """,
    "updates": """
        $v = @(Get-HotFix | Where-Object { $_.InstalledOn -and $_.InstalledOn -ge $start }).Count
    """,
}


def ps_quote(value: str) -> str:
    """Quote *value* as a single-quoted PowerShell literal."""
    return "'" + value.replace("'", "''") + "'"


def _remote_params(target: str) -> str:
    return (
        f"$p = @{{ ComputerName = {ps_quote(target)}; ErrorAction = 'Stop' }}\n"
        "if ($cred) { $p.Credential = $cred }\n"
    )


def _cim_session(target: str) -> str:
    return (
        "$opt = New-CimSessionOption -Protocol Dcom\n"
        f"$sp = @{{ ComputerName = {ps_quote(target)}; SessionOption = $opt; ErrorAction = 'Stop' }}\n"
        "if ($cred) { $sp.Credential = $cred }\n"
        "$s = New-CimSession @sp\n"
    )


def build_bundle_script(target: str, collectors: Sequence[dict[str, Any]], start: str) -> str:
    """Compose the Invoke-Command bundle for the requested collectors.

    Each collector runs in its own try/catch on the remote side so one failed
    query is reported in ``errors`` without aborting the bundle.
    """
    body: list[str] = [
        "param($StartIso)",
        # The remote session starts with 'Continue'; non-terminating errors
        # must reach the per-collector catch.
        "$ErrorActionPreference = 'Stop'",
        "$start = [datetime]::Parse($StartIso, $null, 'RoundtripKind')",
        "$values = @{}",
        "$errors = @{}",
        _EVENT_COUNT_FUNCTION,
        _FILE_COUNT_FUNCTIONS,
    ]
    for spec in collectors:
        name = spec["name"]
        kind = spec["kind"]
        if kind == "event":
            snippet = (
                f"$v = Get-EventCount -LogName {ps_quote(spec['channel'])} "
                f"-Id {int(spec['event_id'])} -Since $start"
            )
        elif kind in _REMOTE_SNIPPETS:
            snippet = _REMOTE_SNIPPETS[kind]
        else:
            raise ChannelError(code="unknown_collector", message=f"no remote script for {kind!r}")
        body.append(
            "try {\n"
            f"{snippet}\n"
            f"    $values[{ps_quote(name)}] = $v\n"
            "} catch {\n"
            f"    $errors[{ps_quote(name)}] = $_.Exception.Message\n"
            "}"
        )
    body.append("[pscustomobject]@{ values = $values; errors = $errors } | ConvertTo-Json -Depth 6 -Compress")

    block = "\n".join(body)
    return (
        _CREDENTIAL_PRELUDE
        + _remote_params(target)
        + f"Invoke-Command @p -ArgumentList {ps_quote(start)} -ScriptBlock {{\n{block}\n}}\n"
    )


def _parse_json(stdout: str) -> Any:
    text = stdout.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ChannelError(code="bad_output", message=f"unparseable PowerShell output: {text[:200]}") from e


def _parse_int(stdout: str) -> int:
    text = stdout.strip()
    try:
        return int(text)
    except ValueError as e:
        raise QueryError(code="bad_output", message=f"expected a count, got {text[:80]!r}") from e


class PowerShellBackend(RemoteBackend):
    """Drive Windows hosts through a local ``powershell``/``pwsh`` executable."""

    min_sample_interval = 1.0

    def __init__(
        self,
        executable: str | None = None,
        *,
        timeout: float | None = None,
        credentials: Credentials | None = None,
    ) -> None:
        self.executable = executable or settings.powershell_exe
        self.timeout = timeout or settings.remote_timeout_seconds
        self.credentials = credentials
        self._lock = threading.Lock()
        self._running: set[subprocess.Popen[str]] = set()

    @property
    def name(self) -> str:
        return "powershell"

    # ── process plumbing ─────────────────────────────────────────────

    def _env(self, credentials: Credentials | None) -> dict[str, str]:
        env = dict(os.environ)
        env.pop(_USER_ENV, None)
        env.pop(_PASS_ENV, None)
        creds = credentials or self.credentials
        if creds is not None:
            env[_USER_ENV] = creds.username
            env[_PASS_ENV] = creds.password
        return env

    def run_script(
        self,
        script: str,
        *,
        timeout: float | None = None,
        credentials: Credentials | None = None,
    ) -> str:
        """Run *script* and return stdout; raise ``ChannelError`` on failure."""
        limit = timeout or self.timeout
        cmd = [self.executable, "-NoProfile", "-NonInteractive", "-Command", "-"]
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self._env(credentials),
            )
        except FileNotFoundError as e:
            raise ChannelError(
                code="powershell_missing", message=f"{self.executable} not found"
            ) from e
        except OSError as e:
            raise ChannelError(code="powershell_error", message=f"{self.executable}: {e}") from e

        with self._lock:
            self._running.add(proc)
        try:
            stdout, stderr = proc.communicate(script, timeout=limit)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            proc.communicate()
            raise ChannelError(code="timeout", message=f"PowerShell timed out after {limit:g}s") from e
        finally:
            with self._lock:
                self._running.discard(proc)

        if proc.returncode != 0:
            detail = (stderr or "").strip().splitlines()
            message = detail[0] if detail else f"PowerShell exited with code {proc.returncode}"
            raise ChannelError(code="powershell_failed", message=message)
        return stdout

    def cancel(self) -> None:
        with self._lock:
            running = list(self._running)
        for proc in running:
            log.info("Killing in-flight PowerShell process %s", proc.pid)
            try:
                proc.kill()
            except OSError:
                continue

    def _query(self, script: str, *, timeout: float | None = None) -> str:
        try:
            return self.run_script(_CREDENTIAL_PRELUDE + script, timeout=timeout)
        except ChannelError as e:
            raise QueryError(code=e.code, message=e.message) from e

    # ── probes ───────────────────────────────────────────────────────

    def probe_connectivity(self, target: str, timeout: float) -> bool:
        millis = max(int(timeout * 1000), 1)
        script = (
            "$ping = New-Object System.Net.NetworkInformation.Ping\n"
            f"try {{ ($ping.Send({ps_quote(target)}, {millis}).Status -eq 'Success') }} "
            "catch { $false }\n"
        )
        stdout = self.run_script(script, timeout=timeout + 10)
        return stdout.strip().lower() == "true"

    def probe_transport(
        self, target: str, credentials: Credentials | None, timeout: float
    ) -> bool:
        script = (
            _CREDENTIAL_PRELUDE
            + f"$w = @{{ ComputerName = {ps_quote(target)}; ErrorAction = 'Stop' }}\n"
            "if ($cred) { $w.Credential = $cred; $w.Authentication = 'Default' }\n"
            "Test-WSMan @w | Out-Null\n"
            "'ok'\n"
        )
        stdout = self.run_script(script, timeout=timeout, credentials=credentials)
        return stdout.strip() == "ok"

    # ── primary path ─────────────────────────────────────────────────

    def execute_remote(
        self,
        target: str,
        transport: Transport,
        credentials: Credentials | None,
        operation: str,
        args: dict[str, Any],
    ) -> dict[str, Any]:
        if transport is not Transport.WINRM:
            raise ChannelError(
                code="unsupported", message=f"remote execution requires WinRM, not {transport}"
            )
        if operation != "collect":
            raise ChannelError(code="unsupported", message=f"unknown operation {operation!r}")

        script = build_bundle_script(target, args.get("collectors", []), args["start"])
        payload = _parse_json(self.run_script(script, credentials=credentials))
        if not isinstance(payload, dict):
            raise ChannelError(code="bad_output", message="remote bundle returned no result")
        return payload

    # ── secondary (query) path ───────────────────────────────────────

    def query_event_count(
        self, target: str, channel: str, event_id: int, start: datetime
    ) -> int:
        script = (
            _EVENT_COUNT_FUNCTION
            + f"Get-EventCount -LogName {ps_quote(channel)} -Id {int(event_id)} "
            f"-Since ([datetime]::Parse({ps_quote(start.isoformat())}, $null, 'RoundtripKind')) "
            f"-Computer {ps_quote(target)}\n"
        )
        return _parse_int(self._query(script))

    def query_host_facts(self, target: str) -> dict[str, Any]:
        script = _cim_session(target) + (
            "$os = Get-CimInstance Win32_OperatingSystem -CimSession $s\n"
            "$cs = Get-CimInstance Win32_ComputerSystem -CimSession $s\n"
            "Remove-CimSession $s\n"
            "@{\n"
            "    domain = $cs.Domain\n"
            "    os_name = $os.Caption\n"
            "    os_build = $os.Version\n"
            "    last_boot = $os.LastBootUpTime.ToUniversalTime().ToString('o')\n"
            "    total_memory_bytes = [int64]$os.TotalVisibleMemorySize * 1024\n"
            "    free_memory_bytes = [int64]$os.FreePhysicalMemory * 1024\n"
            "} | ConvertTo-Json -Compress\n"
        )
        facts = _parse_json(self._query(script))
        if not isinstance(facts, dict):
            raise QueryError(code="bad_output", message="host facts query returned nothing")
        return facts

    def query_volumes(self, target: str) -> list[tuple[float, float]]:
        script = _cim_session(target) + (
            "$d = @(Get-CimInstance Win32_LogicalDisk -Filter 'DriveType=3' -CimSession $s |\n"
            "    ForEach-Object { @{ size = [double]$_.Size; free = [double]$_.FreeSpace } })\n"
            "Remove-CimSession $s\n"
            "ConvertTo-Json -InputObject $d -Compress\n"
        )
        data = _parse_json(self._query(script)) or []
        if isinstance(data, dict):
            data = [data]
        return [(float(item.get("size") or 0), float(item.get("free") or 0)) for item in data]

    def query_protection_status(self, target: str, start: datetime) -> dict[str, Any]:
        script = _cim_session(target) + (
            f"$since = [datetime]::Parse({ps_quote(start.isoformat())}, $null, 'RoundtripKind')\n"
            "$ns = 'root/Microsoft/Windows/Defender'\n"
            "$mp = Get-CimInstance -Namespace $ns -ClassName MSFT_MpComputerStatus -CimSession $s\n"
            "$det = @(Get-CimInstance -Namespace $ns -ClassName MSFT_MpThreatDetection -CimSession $s |\n"
            "    Where-Object { $_.InitialDetectionTime -ge $since }).Count\n"
            "Remove-CimSession $s\n"
            "$scan = $null\n"
            "if ($mp.QuickScanEndTime) { $scan = $mp.QuickScanEndTime.ToUniversalTime().ToString('o') }\n"
            "@{ last_quick_scan = $scan; detections = $det } | ConvertTo-Json -Compress\n"
        )
        status = _parse_json(self._query(script))
        if not isinstance(status, dict):
            raise QueryError(code="bad_output", message="protection status query returned nothing")
        return status

    def count_fault_reports(self, target: str) -> int:
        share = f"\\\\{target}\\C$"
        archive = share + "\\ProgramData\\Microsoft\\Windows\\WER\\ReportArchive"
        script = (
            _FILE_COUNT_FUNCTIONS
            + f"$null = Get-Item -LiteralPath {ps_quote(share)} -ErrorAction Stop\n"
            + f"Get-ItemCount {ps_quote(archive)} -Directory\n"
        )
        return _parse_int(self._query(script))

    def count_crash_dumps(self, target: str) -> int:
        share = f"\\\\{target}\\C$"
        windows = share + "\\Windows"
        script = (
            _FILE_COUNT_FUNCTIONS
            + f"$null = Get-Item -LiteralPath {ps_quote(share)} -ErrorAction Stop\n"
            + f"$root = {ps_quote(windows)}\n"
            "$n = Get-ItemCount (Join-Path $root 'Minidump') -Filter '*.dmp'\n"
            "if (Test-ItemPresent (Join-Path $root 'MEMORY.DMP')) { $n += 1 }\n"
            "$n\n"
        )
        return _parse_int(self._query(script))

    def count_updates(self, target: str, start: datetime) -> int:
        script = (
            f"$since = [datetime]::Parse({ps_quote(start.isoformat())}, $null, 'RoundtripKind')\n"
            + _remote_params(target)
            + "@(Get-HotFix @p | Where-Object { $_.InstalledOn -and $_.InstalledOn -ge $since }).Count\n"
        )
        return _parse_int(self._query(script))

    # ── sampling ─────────────────────────────────────────────────────

    def sample_counters(
        self,
        target: str,
        counter_paths: Sequence[str],
        interval: float,
        max_samples: int,
        credentials: Credentials | None,
    ) -> list[CounterSample]:
        if interval < self.min_sample_interval:
            raise QueryError(
                code="invalid_interval",
                message=f"Get-Counter needs an interval of at least {self.min_sample_interval:g}s",
            )
        counters = ", ".join(ps_quote(path) for path in counter_paths)
        # Get-Counter only takes whole seconds; keep the requested run length.
        seconds = max(int(round(interval)), 1)
        max_samples = max(math.floor(interval * max_samples / seconds), 1)
        sampler = (
            f"Get-Counter -Counter @({counters}) -SampleInterval {seconds} "
            f"-MaxSamples {max_samples} -ErrorAction Stop | ForEach-Object {{\n"
            "    $ts = $_.Timestamp.ToUniversalTime().ToString('o')\n"
            "    foreach ($c in $_.CounterSamples) {\n"
            "        [pscustomobject]@{ ts = $ts; path = $c.Path; value = [double]$c.CookedValue }\n"
            "    }\n"
            "}"
        )
        script = (
            _CREDENTIAL_PRELUDE
            + _remote_params(target)
            + f"$rows = @(Invoke-Command @p -ScriptBlock {{ {sampler} }})\n"
            + "ConvertTo-Json -InputObject $rows -Compress\n"
        )
        timeout = seconds * max_samples + self.timeout
        data = _parse_json(self.run_script(script, timeout=timeout, credentials=credentials)) or []
        if isinstance(data, dict):
            data = [data]
        return [
            CounterSample(
                target=target,
                timestamp=parse_datetime(row["ts"]),
                counter=str(row["path"]),
                value=float(row["value"]),
            )
            for row in data
        ]
