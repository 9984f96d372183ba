"""
Crawl Supervisor
================
Composes the provisioner and the crawl session with a bounded retry.

    attempt 0:  ensure(target) → session.run()
    failure  →  ensure(target, force_reacquire=True)
    attempt 1:  session.run()
    failure  →  propagate unmodified
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from . import platforms
from .platforms import PlatformTarget
from .protocol import SnapshotRecord
from .provisioner import RuntimeProvisioner
from .run_config import SnapshotRunConfig
from .session import CrawlSession

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 2


class CrawlSupervisor:
    """
    Runs a crawl with one reprovision-and-retry on failure.

    Usage::

        supervisor = CrawlSupervisor(SnapshotRunConfig())
        records = await supervisor.run(routes, base_url)
    """

    def __init__(
        self,
        config: Optional[SnapshotRunConfig] = None,
        provisioner: Optional[RuntimeProvisioner] = None,
        session_factory: Callable[..., CrawlSession] = CrawlSession,
        target: Optional[PlatformTarget] = None,
    ):
        self.config = config or SnapshotRunConfig()
        self.provisioner = provisioner or RuntimeProvisioner(self.config)
        self.session_factory = session_factory
        self.target = target
        self.attempts = 0

    async def run(self, routes: Sequence[str], base_url: str) -> List[SnapshotRecord]:
        """
        Provision the browser and capture every route.

        Raises:
            PlatformUnsupported: the host has no bundle (never retried)
            SnapshotError: the retry failed as well; the second error is
                re-raised as-is
        """
        target = self.target or platforms.resolve()
        routes = list(routes)

        executable: Optional[Path] = None
        for attempt in range(_MAX_ATTEMPTS):
            self.attempts = attempt + 1
            try:
                if executable is None:
                    executable = await self._ensure(target, self.config.force_download)
                session = self.session_factory(
                    routes,
                    base_url,
                    executable,
                    headless=self.config.headless,
                    config=self.config,
                )
                return await session.run()
            except Exception as exc:
                if attempt + 1 >= _MAX_ATTEMPTS:
                    logger.error(f"[SUPERVISOR] Retry failed: {exc}")
                    raise
                logger.warning(
                    f"[SUPERVISOR] Attempt {attempt + 1} failed ({type(exc).__name__}: {exc}); "
                    f"re-downloading browser and retrying"
                )
                executable = await self._ensure(target, True)

    async def _ensure(self, target: PlatformTarget, force: bool) -> Path:
        return await asyncio.to_thread(self.provisioner.ensure, target, force)


def run_crawl(
    folder: Union[str, Path],
    routes: Sequence[str],
    base_url: str,
    config: Optional[SnapshotRunConfig] = None,
) -> List[SnapshotRecord]:
    """
    Capture a snapshot of every route of the app served at ``base_url``.

    ``folder`` is the asset directory being served; it is only used for
    reporting. Output files are written by ``materialize``.
    """
    config = config or SnapshotRunConfig()
    logger.info(f"[SUPERVISOR] Snapshotting {len(routes)} route(s) of {folder} via {base_url}")
    supervisor = CrawlSupervisor(config)
    return asyncio.run(supervisor.run(routes, base_url))
