"""
Crawl Protocol
==============
Host-side state machine for the navigate/snapshot exchange.

The controller page is a relay; this object owns the route cursor and
decides what happens after every message::

    IDLE → LAUNCHING → AWAITING_BOOTSTRAP
         → (NAVIGATING(i) → AWAITING_SNAPSHOT(i))*
         → COMPLETED | TIMED_OUT | FAILED

Each navigate command carries a token (the route index, ``-1`` for the
bootstrap load). The page echoes the token back with the snapshot, so a
late or duplicated message is detected instead of being filed under the
wrong route.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

from .errors import ProtocolViolation

logger = logging.getLogger(__name__)

BOOTSTRAP_TOKEN = -1


class SessionState(Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    AWAITING_BOOTSTRAP = "awaiting_bootstrap"
    NAVIGATING = "navigating"
    AWAITING_SNAPSHOT = "awaiting_snapshot"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.TIMED_OUT, SessionState.FAILED})


@dataclass(frozen=True)
class SnapshotRecord:
    """Rendered markup captured for one route."""
    route: str
    markup: str


# ---------------------------------------------------------------------------
# Commands (host → page)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Navigate:
    route: str
    target_path: str
    token: int


@dataclass(frozen=True)
class AllDone:
    captured: int


Command = Union[Navigate, AllDone]


def build_target_path(route: str, marker_param: str) -> str:
    """``"contact/us"`` → ``"/contact/us?<marker>"``."""
    return "/" + route.strip().lstrip("/") + "?" + marker_param


class CrawlProtocol:
    """
    Drives one pass over ``routes``.

    Usage::

        protocol = CrawlProtocol(["about", "contact/us"], "spa-snapshot")
        protocol.begin()
        command = protocol.on_snapshot(html, token)   # → Navigate | AllDone
    """

    def __init__(self, routes: Sequence[str], marker_param: str):
        self.routes: List[str] = list(routes)
        self.marker_param = marker_param
        self.state = SessionState.IDLE
        self.cursor = 0
        self.messages_received = 0
        self._records: List[SnapshotRecord] = []
        self._failure: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Transitions driven by the session
    # ------------------------------------------------------------------

    def launching(self) -> None:
        self._require(SessionState.IDLE)
        self.state = SessionState.LAUNCHING

    def begin(self) -> None:
        """The controller page is loaded; the app's default load is next."""
        if self.state is SessionState.IDLE:
            self.state = SessionState.LAUNCHING
        self._require(SessionState.LAUNCHING)
        self.state = SessionState.AWAITING_BOOTSTRAP

    def navigation_sent(self, command: Navigate) -> None:
        self._require(SessionState.NAVIGATING)
        if command.token != self.cursor:
            self._violate(f"Navigate token {command.token} does not match cursor {self.cursor}")
        self.state = SessionState.AWAITING_SNAPSHOT

    def timed_out(self) -> None:
        if self.state not in TERMINAL_STATES:
            self.state = SessionState.TIMED_OUT

    def failed(self, exc: BaseException) -> None:
        if self.state not in TERMINAL_STATES:
            self.state = SessionState.FAILED
            self._failure = exc

    # ------------------------------------------------------------------
    # Events from the page
    # ------------------------------------------------------------------

    def on_snapshot(self, html, token) -> Command:
        """
        Handle one ``snapshot`` message.

        Args:
            html: Serialized document of the embedded app
            token: Token of the navigation this snapshot answers

        Returns:
            The next command: ``Navigate`` for the following route, or
            ``AllDone`` once every route has been captured

        Raises:
            ProtocolViolation: unexpected state, wrong token or bad payload
        """
        self.messages_received += 1
        # JS numbers may cross the bridge as floats
        if isinstance(token, float) and token.is_integer():
            token = int(token)
        if not isinstance(html, str):
            self._violate(f"Snapshot payload is {type(html).__name__}, expected str")

        if self.state is SessionState.AWAITING_BOOTSTRAP:
            if token not in (None, BOOTSTRAP_TOKEN):
                self._violate(f"Bootstrap snapshot carried route token {token!r}")
            logger.info("[SESSION] App loaded (bootstrap snapshot)")
            return self._advance()

        if self.state is not SessionState.AWAITING_SNAPSHOT:
            self._violate(f"Snapshot received while {self.state.value}")

        route = self.routes[self.cursor]
        if token != self.cursor:
            self._violate(
                f"Snapshot token {token!r} does not match in-flight route "
                f"#{self.cursor} ({route})",
                route=route,
            )

        self._records.append(SnapshotRecord(route=route, markup=html))
        logger.info(f"[SESSION] Snapshot {self.cursor + 1}/{len(self.routes)}: {route}")
        logger.debug(f"[SESSION] {html[:300]}\n...[truncated]")
        self.cursor += 1
        return self._advance()

    def on_complete(self) -> None:
        """Handle the page's ``onComplete`` acknowledgement."""
        if self.state is not SessionState.NAVIGATING or self.cursor < len(self.routes):
            self._violate(
                f"Completion signalled after {len(self._records)}/{len(self.routes)} routes"
            )
        self.state = SessionState.COMPLETED

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def records(self) -> List[SnapshotRecord]:
        """Captured records; only available once the pass completed."""
        if self.state is not SessionState.COMPLETED:
            raise ProtocolViolation(
                f"Snapshots requested while {self.state.value} "
                f"({len(self._records)}/{len(self.routes)} captured)"
            )
        return list(self._records)

    @property
    def captured(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance(self) -> Command:
        self.state = SessionState.NAVIGATING
        if self.cursor >= len(self.routes):
            return AllDone(captured=len(self._records))
        route = self.routes[self.cursor]
        return Navigate(
            route=route,
            target_path=build_target_path(route, self.marker_param),
            token=self.cursor,
        )

    def _require(self, expected: SessionState) -> None:
        if self.state is not expected:
            self._violate(f"Expected state {expected.value}, was {self.state.value}")

    def _violate(self, message: str, route: Optional[str] = None) -> None:
        exc = ProtocolViolation(message, route=route)
        self.failed(exc)
        raise exc
