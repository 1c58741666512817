from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class FleetError(Exception):
    """A controlled, user-facing error.

    Subclasses mark the scope of the failure: batch, target or metric.
    """

    code: str
    message: str

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ConfigError(FleetError):
    """Invalid run configuration, raised before any target is attempted."""


class ChannelError(FleetError):
    """The execution channel to a target failed as a whole."""


class QueryError(FleetError):
    """A single query against a target failed or is unsupported."""
