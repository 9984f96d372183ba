"""
Browser process cleanup helpers.

Used by the provisioner before it deletes a bundle directory: a browser
still running from that directory keeps files locked on Windows.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List

import psutil

logger = logging.getLogger(__name__)

_TERMINATE_GRACE_S = 3.0


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except (ValueError, OSError):
        return False


def _terminate(procs: List[psutil.Process], grace_s: float) -> int:
    """Terminate, wait, then kill survivors. Returns how many were signalled."""
    signalled = []
    for proc in procs:
        try:
            proc.terminate()
            signalled.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    if not signalled:
        return 0
    _, alive = psutil.wait_procs(signalled, timeout=grace_s)
    for proc in alive:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return len(signalled)


def terminate_processes_under(root: Path, grace_s: float = _TERMINATE_GRACE_S) -> int:
    """
    Stop every process whose executable lives inside ``root``.

    Only binaries unpacked into the bundle directory can match, so this
    never touches a browser the user started from their own install.
    Processes whose executable path is unreadable are skipped.

    Returns:
        Number of processes signalled
    """
    own_pid = os.getpid()
    victims = []
    for proc in psutil.process_iter(["pid", "name", "exe"]):
        try:
            exe = proc.info.get("exe")
            if not exe or proc.pid == own_pid:
                continue
            if _is_within(Path(exe), root):
                victims.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

    count = _terminate(victims, grace_s)
    if count:
        logger.info(f"[PROVISION] Terminated {count} browser process(es) running from {root}")
    return count


def terminate_processes_named(names: Iterable[str], grace_s: float = _TERMINATE_GRACE_S) -> int:
    """
    Stop every process whose name matches one of ``names``.

    Coarse: may hit unrelated processes that share the browser's binary
    name. Permission errors are ignored.
    """
    wanted = {n.lower() for n in names}
    own_pid = os.getpid()
    victims = []
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            name = (proc.info.get("name") or "").lower()
            if proc.pid == own_pid or not name:
                continue
            stem = name[:-4] if name.endswith(".exe") else name
            if name in wanted or stem in wanted:
                victims.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

    count = _terminate(victims, grace_s)
    if count:
        logger.warning(f"[PROVISION] Terminated {count} process(es) by name: {sorted(wanted)}")
    return count
