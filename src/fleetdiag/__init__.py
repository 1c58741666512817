"""
fleetdiag

Fleet-wide Windows health diagnostics: one snapshot per host, a
good-vs-bad host comparator and a performance counter sampler.
"""

from __future__ import annotations

from .assembler import SnapshotAssembler
from .compare import compare_snapshots
from .config import CollectionOptions, Credentials
from .fleet import FleetDriver
from .models import ComparisonResult, HostSnapshot, PerformanceSample
from .perf import sample_performance

__all__ = [
    "CollectionOptions",
    "ComparisonResult",
    "Credentials",
    "FleetDriver",
    "HostSnapshot",
    "PerformanceSample",
    "SnapshotAssembler",
    "__version__",
    "compare_snapshots",
    "sample_performance",
]

__version__ = "0.1.0"
