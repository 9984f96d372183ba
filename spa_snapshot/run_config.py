"""
Unified Run Configuration
=========================
Single source of truth for ALL snapshot defaults and runtime limits.

Every subsystem (provisioner, crawl session, supervisor, static server,
materializer) reads from this object. CLI flags and environment variables
populate it; nothing else hard-codes these numbers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "cache_root": Path.home() / ".cache" / "spa-snapshot" / "runtimes",
    "headless": True,
    "completion_timeout_s": 90.0,    # whole-session bound, not per route
    "download_timeout_s": 300,       # requests connect/read timeout
    "download_chunk_size": 1024 * 1024,
    "archive_base_url": (
        "https://huggingface.co/datasets/magiccodingman/chromium-bundles"
        "/resolve/main/bundles"
    ),
    "marker_param": "spa-snapshot",
    "window_width": 1200,
    "window_height": 800,
    "server_host": "127.0.0.1",
    "server_ready_timeout_s": 5.0,
    "api_prefix": "/api",
    "write_rule_files": True,
}

# Environment variable -> field name
_ENV_OVERRIDES = {
    "SPA_SNAPSHOT_CACHE_DIR": "cache_root",
    "SPA_SNAPSHOT_HEADLESS": "headless",
    "SPA_SNAPSHOT_TIMEOUT": "completion_timeout_s",
    "SPA_SNAPSHOT_ARCHIVE_BASE_URL": "archive_base_url",
}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class SnapshotRunConfig:
    """
    Unified configuration consumed by every snapshot subsystem.

    Populate via:
      - ``SnapshotRunConfig()``                    → all defaults
      - ``SnapshotRunConfig(headless=False)``      → override one value
      - ``SnapshotRunConfig.from_cli_args(ns)``    → from argparse Namespace
      - ``cfg.with_env()``                         → overlay environment
    """

    # ---- Browser runtime cache ----
    cache_root: Path = _DEFAULTS["cache_root"]
    archive_base_url: str = _DEFAULTS["archive_base_url"]
    download_timeout_s: int = _DEFAULTS["download_timeout_s"]
    download_chunk_size: int = _DEFAULTS["download_chunk_size"]

    # ---- Browser / session ----
    headless: bool = _DEFAULTS["headless"]
    completion_timeout_s: float = _DEFAULTS["completion_timeout_s"]
    marker_param: str = _DEFAULTS["marker_param"]
    window_width: int = _DEFAULTS["window_width"]
    window_height: int = _DEFAULTS["window_height"]

    # ---- Static server ----
    server_host: str = _DEFAULTS["server_host"]
    server_ready_timeout_s: float = _DEFAULTS["server_ready_timeout_s"]
    api_prefix: str = _DEFAULTS["api_prefix"]

    # ---- Supervisor ----
    force_download: bool = False

    # ---- Output ----
    write_rule_files: bool = _DEFAULTS["write_rule_files"]

    def __post_init__(self):
        self.cache_root = Path(self.cache_root).expanduser()

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "SnapshotRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        cfg = cls().with_env()
        overrides = {}
        if getattr(args, "cache_dir", None):
            overrides["cache_root"] = Path(args.cache_dir)
        if getattr(args, "headed", False):
            overrides["headless"] = False
        if getattr(args, "timeout", None) is not None:
            overrides["completion_timeout_s"] = float(args.timeout)
        if getattr(args, "force_download", False):
            overrides["force_download"] = True
        if getattr(args, "no_rules", False):
            overrides["write_rule_files"] = False
        return replace(cfg, **overrides)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "SnapshotRunConfig":
        """Return a copy with ``SPA_SNAPSHOT_*`` environment overrides applied."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for var, name in _ENV_OVERRIDES.items():
            raw = environ.get(var)
            if raw is None or raw.strip() == "":
                continue
            raw = raw.strip()
            if name == "headless":
                overrides[name] = raw.lower() in _TRUTHY
            elif name == "completion_timeout_s":
                try:
                    overrides[name] = float(raw)
                except ValueError:
                    logger.warning(f"Ignoring {var}={raw!r}: not a number")
            elif name == "cache_root":
                overrides[name] = Path(raw)
            else:
                overrides[name] = raw
        return replace(self, **overrides) if overrides else self

    def archive_url(self, platform_id: str) -> str:
        """Download URL of the bundle for ``platform_id``."""
        return f"{self.archive_base_url.rstrip('/')}/{platform_id}.tar.xz?download=true"

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, folder: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("SNAPSHOT RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Folder:           {folder}")
        logger.info(f"  Browser cache:    {self.cache_root}")
        logger.info(f"  Headless:         {self.headless}")
        logger.info(f"  Timeout:          {self.completion_timeout_s:g}s for all routes")
        logger.info(f"  Marker param:     ?{self.marker_param}")
        if self.force_download:
            logger.info(f"  Force Download:   Yes (ignore cached browser)")
        if not self.write_rule_files:
            logger.info(f"  Rule Files:       skipped (_headers/_redirects)")
        logger.info("=" * 60)
