"""
Platform Targets
================
Maps the host OS family and CPU architecture onto one of the browser
bundles published for download.

The table is built once at import time and never mutated. Each target
knows where its archive lives and which folder the archive unpacks to.
"""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .errors import PlatformUnsupported

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformTarget:
    """One downloadable browser bundle."""
    platform_id: str            # e.g. "linux-x64"; also the archive name
    remote_archive_key: str     # chromium snapshot platform, e.g. "Linux_x64"
    extracted_folder_name: str  # folder inside <platform_id>/native/
    os_family: str              # "windows" | "linux" | "darwin"

    @property
    def archive_name(self) -> str:
        return f"{self.platform_id}.tar.xz"

    @property
    def is_windows(self) -> bool:
        return self.os_family == "windows"

    @property
    def is_mac(self) -> bool:
        return self.os_family == "darwin"


_TARGET_LIST = (
    PlatformTarget("win-x64", "Win_x64", "chrome-win", "windows"),
    PlatformTarget("win-x86", "Win", "chrome-win", "windows"),
    PlatformTarget("linux-x64", "Linux_x64", "chrome-linux", "linux"),
    PlatformTarget("linux-x86", "Linux", "chrome-linux", "linux"),
    PlatformTarget("osx-x64", "Mac", "chrome-mac", "darwin"),
    PlatformTarget("osx-arm64", "Mac_Arm", "chrome-mac", "darwin"),
)

TARGETS: Mapping[str, PlatformTarget] = MappingProxyType(
    {t.platform_id: t for t in _TARGET_LIST}
)

# (os family, normalized arch) -> platform id.
# Windows on ARM runs the x64 build under emulation; Linux ARM has no bundle.
SUPPORTED_MATRIX: Mapping[Tuple[str, str], str] = MappingProxyType({
    ("windows", "x64"): "win-x64",
    ("windows", "x86"): "win-x86",
    ("windows", "arm64"): "win-x64",
    ("linux", "x64"): "linux-x64",
    ("linux", "x86"): "linux-x86",
    ("darwin", "x64"): "osx-x64",
    ("darwin", "arm64"): "osx-arm64",
})

_SYSTEM_ALIASES = {
    "windows": "windows",
    "win32": "windows",
    "cygwin": "windows",
    "linux": "linux",
    "darwin": "darwin",
    "macos": "darwin",
}

_MACHINE_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "i386": "x86",
    "i486": "x86",
    "i586": "x86",
    "i686": "x86",
    "x86": "x86",
    "arm64": "arm64",
    "aarch64": "arm64",
    "armv8l": "arm64",
}


def normalize_system(system: str) -> Optional[str]:
    return _SYSTEM_ALIASES.get((system or "").strip().lower())


def normalize_machine(machine: str) -> Optional[str]:
    return _MACHINE_ALIASES.get((machine or "").strip().lower())


def resolve(system: Optional[str] = None, machine: Optional[str] = None) -> PlatformTarget:
    """
    Resolve the bundle for an OS / architecture pair.

    Args:
        system: OS name as reported by ``platform.system()`` (default: host)
        machine: CPU name as reported by ``platform.machine()`` (default: host)

    Returns:
        The matching ``PlatformTarget``

    Raises:
        PlatformUnsupported: the pair is outside the supported matrix
    """
    if system is None:
        system = platform.system()
    if machine is None:
        machine = platform.machine()

    key = (normalize_system(system), normalize_machine(machine))
    platform_id = SUPPORTED_MATRIX.get(key)
    if platform_id is None:
        raise PlatformUnsupported(system, machine)

    target = TARGETS[platform_id]
    logger.info(f"[PROVISION] Detected environment: {target.platform_id} ({system}/{machine})")
    return target
