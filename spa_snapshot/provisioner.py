"""
Runtime Provisioner
===================
Guarantees a verified browser executable exists in the local cache.

Layout under ``cache_root``::

    <cache_root>/
        <platform_id>.tar.xz          (transient download)
        <platform_id>.tar             (transient decompressed archive)
        <platform_id>/native/<folder>/...chrome

Bundle states:
    ABSENT   : extraction directory missing
    VALID    : directory present and an executable found inside it
    CORRUPT  : directory present but no executable inside it

Recovery policy:
    A corrupt bundle is wiped before downloading. If any fetch step
    fails, the bundle is force-cleaned (processes stopped, read-only bits
    cleared, tree deleted) and the fetch is retried exactly once. A second
    failure raises ``ProvisioningFailed`` and leaves no partial tree.
"""

from __future__ import annotations

import logging
import lzma
import os
import shutil
import stat
import tarfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

import requests

from .errors import ProvisioningFailed
from .platforms import PlatformTarget
from .processes import terminate_processes_named, terminate_processes_under
from .run_config import SnapshotRunConfig

logger = logging.getLogger(__name__)

# attempt ∈ {0, 1}; attempt 1 is always preceded by forced cleanup
_FETCH_ATTEMPTS = 2

# Pause after killing processes so the OS releases file handles
_RELEASE_DELAY_S = 0.2

_FETCH_ERRORS = (
    requests.RequestException,
    OSError,
    EOFError,
    ValueError,
    lzma.LZMAError,
    tarfile.TarError,
)

_WINDOWS_EXECUTABLES = ("chrome.exe",)
_POSIX_EXECUTABLES = ("chrome", "chromium", "Chromium.app/Contents/MacOS/Chromium")

_WINDOWS_PROCESS_NAMES = ("chrome", "chrome.exe")
_POSIX_PROCESS_NAMES = ("chrome", "chromium")


class BundleState(Enum):
    ABSENT = "absent"
    VALID = "extracted-valid"
    CORRUPT = "extracted-corrupt"


@dataclass(frozen=True)
class RuntimeBundle:
    """On-disk state of one target's browser install."""
    target: PlatformTarget
    directory: Path
    state: BundleState
    executable: Optional[Path] = None


def executable_names(target: PlatformTarget) -> Tuple[str, ...]:
    return _WINDOWS_EXECUTABLES if target.is_windows else _POSIX_EXECUTABLES


def process_names(target: PlatformTarget) -> Tuple[str, ...]:
    return _WINDOWS_PROCESS_NAMES if target.is_windows else _POSIX_PROCESS_NAMES


def _clear_readonly(root: Path) -> None:
    """Make every file and directory under ``root`` writable."""
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                continue
            try:
                mode = os.stat(path).st_mode
                if not mode & stat.S_IWRITE:
                    os.chmod(path, mode | stat.S_IWRITE)
            except OSError:
                continue


def _mark_executable(path: Path) -> None:
    if os.name == "nt":
        return
    mode = path.stat().st_mode
    wanted = mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
    if wanted != mode:
        os.chmod(path, wanted)


class RuntimeProvisioner:
    """
    Downloads, verifies and repairs browser bundles.

    Usage::

        provisioner = RuntimeProvisioner(SnapshotRunConfig())
        exe = provisioner.ensure(platforms.resolve())
    """

    def __init__(
        self,
        config: Optional[SnapshotRunConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or SnapshotRunConfig()
        self.cache_root = Path(self.config.cache_root)
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def bundle_dir(self, target: PlatformTarget) -> Path:
        """Directory tree owned by ``target``; the only tree it mutates."""
        return self.cache_root / target.platform_id

    def extraction_dir(self, target: PlatformTarget) -> Path:
        return self.bundle_dir(target) / "native" / target.extracted_folder_name

    def _archive_paths(self, target: PlatformTarget) -> Tuple[Path, Path]:
        return (
            self.cache_root / target.archive_name,
            self.cache_root / f"{target.platform_id}.tar",
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def find_executable(self, target: PlatformTarget) -> Path:
        """
        Locate the browser executable inside the extraction directory.

        Raises:
            FileNotFoundError: directory missing or no executable inside
        """
        folder = self.extraction_dir(target)
        if not folder.is_dir():
            raise FileNotFoundError(f"Expected folder not found: {folder}")

        wanted = [name.lower() for name in executable_names(target)]
        candidates = sorted(
            (p for p in folder.rglob("*") if p.is_file()),
            key=lambda p: (len(p.relative_to(folder).parts), str(p)),
        )
        for path in candidates:
            rel = path.relative_to(folder).as_posix().lower()
            for name in wanted:
                if rel == name or rel.endswith("/" + name):
                    return path

        raise FileNotFoundError(f"Could not find a browser executable in: {folder}")

    def inspect(self, target: PlatformTarget) -> RuntimeBundle:
        folder = self.extraction_dir(target)
        if not folder.is_dir():
            return RuntimeBundle(target, folder, BundleState.ABSENT)
        try:
            exe = self.find_executable(target)
        except FileNotFoundError:
            return RuntimeBundle(target, folder, BundleState.CORRUPT)
        return RuntimeBundle(target, folder, BundleState.VALID, exe)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure(self, target: PlatformTarget, force_reacquire: bool = False) -> Path:
        """
        Return the path of a verified executable for ``target``.

        Args:
            target: Bundle to provision
            force_reacquire: Discard any cached bundle and download again

        Raises:
            ProvisioningFailed: download or extraction failed twice
        """
        self.cache_root.mkdir(parents=True, exist_ok=True)

        if force_reacquire:
            logger.warning(f"[PROVISION] Forced re-download of {target.platform_id}")
            self._cleanup_before_fetch(target)
            return self._fetch_with_recovery(target)

        bundle = self.inspect(target)
        if bundle.state is BundleState.VALID:
            logger.info(f"[PROVISION] Browser found and ready at: {bundle.executable}")
            return bundle.executable

        if bundle.state is BundleState.CORRUPT:
            logger.warning(f"[PROVISION] Browser missing or corrupted at: {bundle.directory}")
            self._cleanup_before_fetch(target)
        else:
            logger.info(f"[PROVISION] No cached browser for {target.platform_id}")

        return self._fetch_with_recovery(target)

    def force_cleanup(self, target: PlatformTarget) -> None:
        """
        Remove ``target``'s bundle tree and leftover archives.

        Processes running from the bundle are stopped first. Killing by
        process name is the last resort, only when deletion still fails
        with a permission error.
        """
        for leftover in self._archive_paths(target):
            if leftover.exists():
                leftover.unlink()

        folder = self.bundle_dir(target)
        if not folder.exists():
            return

        logger.warning(f"[PROVISION] Force deleting folder: {folder}")
        if terminate_processes_under(folder):
            time.sleep(_RELEASE_DELAY_S)
        _clear_readonly(folder)
        try:
            shutil.rmtree(folder)
        except PermissionError as exc:
            logger.warning(f"[PROVISION] Delete blocked ({exc}); stopping browser processes by name")
            if terminate_processes_named(process_names(target)):
                time.sleep(_RELEASE_DELAY_S)
            _clear_readonly(folder)
            shutil.rmtree(folder)

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def _fetch_with_recovery(self, target: PlatformTarget) -> Path:
        last_exc: Optional[BaseException] = None
        for attempt in range(_FETCH_ATTEMPTS):
            try:
                if attempt > 0:
                    logger.warning("[PROVISION] Retrying after full cleanup...")
                    self.force_cleanup(target)
                return self._fetch(target)
            except _FETCH_ERRORS as exc:
                last_exc = exc
                logger.error(
                    f"[PROVISION] Fetch failed for {target.platform_id} "
                    f"(attempt {attempt + 1}/{_FETCH_ATTEMPTS}): {exc}"
                )

        try:
            self.force_cleanup(target)
        except OSError as exc:
            logger.error(f"[PROVISION] Could not remove partial bundle: {exc}")
        raise ProvisioningFailed(target.platform_id, str(last_exc)) from last_exc

    def _cleanup_before_fetch(self, target: PlatformTarget) -> None:
        try:
            self.force_cleanup(target)
        except OSError as exc:
            logger.error(f"[PROVISION] Could not clear {self.bundle_dir(target)}: {exc}")
            raise ProvisioningFailed(target.platform_id, f"cleanup failed: {exc}") from exc

    def _fetch(self, target: PlatformTarget) -> Path:
        """Download, decompress, extract and verify one bundle."""
        archive_path, tar_path = self._archive_paths(target)
        url = self.config.archive_url(target.platform_id)

        logger.info(f"[PROVISION] Downloading browser bundle: {target.platform_id}")
        self._download(url, archive_path)
        logger.info(f"[PROVISION] Saved archive to: {archive_path}")

        logger.info("[PROVISION] Decompressing .xz to .tar...")
        with lzma.open(archive_path, "rb") as src, open(tar_path, "wb") as dst:
            shutil.copyfileobj(src, dst, self.config.download_chunk_size)

        logger.info("[PROVISION] Extracting .tar...")
        self._extract(tar_path, target)

        archive_path.unlink()
        tar_path.unlink()

        exe = self.find_executable(target)
        _mark_executable(exe)
        logger.info(f"[PROVISION] Extraction complete: {exe}")
        return exe

    def _download(self, url: str, dest: Path) -> None:
        chunk_size = self.config.download_chunk_size
        with self._session.get(url, stream=True, timeout=self.config.download_timeout_s) as response:
            response.raise_for_status()
            total = int(response.headers.get("Content-Length") or 0)
            written = 0
            next_report = 10
            with open(dest, "wb") as fh:
                for chunk in response.iter_content(chunk_size=chunk_size):
                    if not chunk:
                        continue
                    fh.write(chunk)
                    written += len(chunk)
                    if total and written * 100 // total >= next_report:
                        logger.info(f"[PROVISION] Downloaded {written * 100 // total}% of {total:,} bytes")
                        next_report += 10
        if written == 0:
            raise ValueError(f"Empty download from {url}")

    def _extract(self, tar_path: Path, target: PlatformTarget) -> None:
        """Extract file entries, refusing any that fall outside the bundle tree."""
        bundle = self.bundle_dir(target).resolve()

        def inside(path: Path) -> bool:
            return path.resolve().is_relative_to(bundle)

        with tarfile.open(tar_path, "r:") as tar:
            for member in tar.getmembers():
                if member.isdir():
                    continue
                dest = self.cache_root / member.name
                escapes = not inside(dest)
                if member.issym():
                    escapes = escapes or not inside(dest.parent / member.linkname)
                elif member.islnk():
                    escapes = escapes or not inside(self.cache_root / member.linkname)
                if escapes:
                    raise ValueError(
                        f"Archive entry outside {target.platform_id}/: {member.name}"
                    )
                tar.extract(member, self.cache_root, filter="data")
