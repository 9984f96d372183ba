"""
End-to-end snapshot run: discover → serve → crawl → materialize.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .materialize import save_snapshots, update_rule_files
from .protocol import SnapshotRecord
from .routes import discover_routes
from .run_config import SnapshotRunConfig
from .server import StaticSiteServer
from .supervisor import run_crawl

logger = logging.getLogger(__name__)


@dataclass
class SnapshotResult:
    routes: List[str] = field(default_factory=list)
    records: List[SnapshotRecord] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)
    elapsed_s: float = 0.0


def snapshot_site(folder, config: Optional[SnapshotRunConfig] = None) -> SnapshotResult:
    """Snapshot every route of the app published in ``folder`` and write the output."""
    config = config or SnapshotRunConfig()
    folder = Path(folder).resolve()
    start = time.monotonic()

    routes = discover_routes(folder)

    server = StaticSiteServer(
        folder,
        host=config.server_host,
        api_prefix=config.api_prefix,
        ready_timeout_s=config.server_ready_timeout_s,
    )
    with server:
        for route in routes:
            logger.debug(f"[ROUTES] Will access: {server.base_url}/{route}")
        records = run_crawl(folder, routes, server.base_url, config)

    written = save_snapshots(folder, records)
    if config.write_rule_files:
        update_rule_files(folder, routes)

    return SnapshotResult(
        routes=routes,
        records=records,
        written=written,
        elapsed_s=time.monotonic() - start,
    )
