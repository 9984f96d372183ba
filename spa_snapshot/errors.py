"""
Error Taxonomy
==============
Every failure the snapshot pipeline can surface derives from
``SnapshotError`` so the CLI can report it uniformly.

Retry semantics (enforced by ``CrawlSupervisor``):

    PlatformUnsupported   fatal, raised before any attempt starts
    ProvisioningFailed    fatal after one forced-cleanup retry
    LaunchFailure         retried once after a forced reprovision
    SnapshotTimeout       retried once after a forced reprovision
    ProtocolViolation     fails the session; retried like any session error
"""

from __future__ import annotations

from typing import Optional


class SnapshotError(Exception):
    """Base class for all snapshot pipeline errors."""


class PlatformUnsupported(SnapshotError):
    """The host OS / architecture pair has no browser bundle."""

    def __init__(self, system: str, machine: str):
        self.system = system
        self.machine = machine
        super().__init__(
            f"Unsupported OS/architecture: {system or 'unknown'}/{machine or 'unknown'}"
        )


class ProvisioningFailed(SnapshotError):
    """The browser bundle could not be downloaded or extracted."""

    def __init__(self, platform_id: str, reason: str = ""):
        self.platform_id = platform_id
        msg = f"Could not provision browser bundle for {platform_id}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LaunchFailure(SnapshotError):
    """The browser process failed to start or the page could not attach."""


class SnapshotTimeout(SnapshotError):
    """The completion signal did not arrive within the configured bound."""

    def __init__(self, timeout_s: float, captured: int = 0, expected: int = 0):
        self.timeout_s = timeout_s
        self.captured = captured
        self.expected = expected
        super().__init__(
            f"Timed out after {timeout_s:g}s waiting for snapshots to finish "
            f"({captured}/{expected} routes captured)"
        )


class ProtocolViolation(SnapshotError):
    """A malformed or out-of-order message arrived from the controller page."""

    def __init__(self, message: str, route: Optional[str] = None):
        self.route = route
        super().__init__(message)


class RouteDiscoveryError(SnapshotError):
    """The asset folder or its sitemaps do not yield a usable route list."""


class ServerStartupError(SnapshotError):
    """The local static server did not become reachable in time."""
