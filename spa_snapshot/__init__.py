"""
SPA Snapshot Package
Renders every route of a client-side single-page app to static HTML so
crawlers that do not execute scripts still see complete content.

CLI Usage:
    python -m spa_snapshot --folder <path> [options]

    Options:
        --cache-dir        Browser bundle cache directory
        --timeout          Seconds to wait for all snapshots (default: 90)
        --headed           Show the browser window
        --force-download   Re-download the browser bundle
        --no-rules         Skip _headers / _redirects generation
        --provision-only   Only download/verify the browser
"""

from .errors import (
    SnapshotError,
    PlatformUnsupported,
    ProvisioningFailed,
    LaunchFailure,
    SnapshotTimeout,
    ProtocolViolation,
    RouteDiscoveryError,
    ServerStartupError,
)
from .platforms import PlatformTarget, resolve
from .provisioner import RuntimeProvisioner, RuntimeBundle, BundleState
from .protocol import CrawlProtocol, SessionState, SnapshotRecord
from .session import CrawlSession
from .supervisor import CrawlSupervisor, run_crawl
from .run_config import SnapshotRunConfig
from .routes import discover_routes
from .server import StaticSiteServer
from .materialize import save_snapshots, update_rule_files
from .runner import snapshot_site, SnapshotResult

__all__ = [
    # Errors
    'SnapshotError',
    'PlatformUnsupported',
    'ProvisioningFailed',
    'LaunchFailure',
    'SnapshotTimeout',
    'ProtocolViolation',
    'RouteDiscoveryError',
    'ServerStartupError',
    # Provisioning
    'PlatformTarget',
    'resolve',
    'RuntimeProvisioner',
    'RuntimeBundle',
    'BundleState',
    # Crawl
    'CrawlProtocol',
    'SessionState',
    'SnapshotRecord',
    'CrawlSession',
    'CrawlSupervisor',
    'run_crawl',
    # Collaborators
    'SnapshotRunConfig',
    'discover_routes',
    'StaticSiteServer',
    'save_snapshots',
    'update_rule_files',
    'snapshot_site',
    'SnapshotResult',
]

__version__ = '1.0.0'
