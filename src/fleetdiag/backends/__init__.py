"""Management backends."""

from __future__ import annotations

from ..config import Credentials
from ..errors import ConfigError
from .base import RemoteBackend
from .local import LocalBackend
from .powershell import PowerShellBackend

__all__ = [
    "BACKENDS",
    "LocalBackend",
    "PowerShellBackend",
    "RemoteBackend",
    "get_backend",
]


BACKENDS = ("powershell", "local")


def get_backend(name: str, *, credentials: Credentials | None = None) -> RemoteBackend:
    """Get backend by name."""
    if name == "powershell":
        return PowerShellBackend(credentials=credentials)
    if name == "local":
        return LocalBackend()

    raise ConfigError(
        code="unknown_backend",
        message=f"Unknown backend: {name}. Available: {', '.join(BACKENDS)}",
    )
