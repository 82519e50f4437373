"""Read-only host information handed to the user interface."""

from __future__ import annotations

import platform as _platform
import sys
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

import psutil


@dataclass(frozen=True)
class HostInfo:
    """Host platform identifier and component versions."""

    platform: str
    versions: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        # Freeze whatever mapping the caller passed in
        object.__setattr__(self, "versions", MappingProxyType(dict(self.versions)))


def build_host_info(extra_versions: Optional[Mapping[str, str]] = None) -> HostInfo:
    from . import __version__

    versions = {
        "stack_launcher": __version__,
        "python": _platform.python_version(),
        "psutil": psutil.__version__,
    }
    if extra_versions:
        versions.update(extra_versions)
    return HostInfo(platform=sys.platform, versions=versions)


__all__ = ["HostInfo", "build_host_info"]
