"""
Static Site Server
==================
Serves the published asset folder on an ephemeral loopback port.

Single-page-app fallback: a request whose path has no file extension,
is not under the API prefix and matches no file is answered with
``index.html`` so client-side routing can take over.
"""

from __future__ import annotations

import logging
import posixpath
import threading
import time
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlsplit

import requests

from .errors import ServerStartupError

logger = logging.getLogger(__name__)

_READY_POLL_INTERVAL_S = 0.2


class SpaRequestHandler(SimpleHTTPRequestHandler):
    """Static file handler with SPA fallback to ``index.html``."""

    api_prefix = "/api"

    def __init__(self, *args, api_prefix: str = "/api", **kwargs):
        self.api_prefix = api_prefix
        super().__init__(*args, **kwargs)

    def _should_fallback(self) -> bool:
        request_path = unquote(urlsplit(self.path).path)
        if posixpath.splitext(request_path)[1]:
            return False
        if self.api_prefix and (
            request_path == self.api_prefix or request_path.startswith(self.api_prefix.rstrip("/") + "/")
        ):
            return False
        return not Path(self.translate_path(self.path)).exists()

    def send_head(self):
        if self._should_fallback():
            logger.debug(f"[SERVER] Fallback {self.path} → /index.html")
            query = urlsplit(self.path).query
            self.path = "/index.html" + (f"?{query}" if query else "")
        return super().send_head()

    def end_headers(self):
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug(f"[SERVER] {self.address_string()} {format % args}")


class StaticSiteServer:
    """
    Background HTTP server for one asset folder.

    Usage::

        with StaticSiteServer(folder) as server:
            print(server.base_url)
    """

    def __init__(
        self,
        folder,
        host: str = "127.0.0.1",
        api_prefix: str = "/api",
        ready_timeout_s: float = 5.0,
    ):
        self.folder = Path(folder).resolve()
        self.host = host
        self.api_prefix = api_prefix
        self.ready_timeout_s = ready_timeout_s
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        if self._httpd is None:
            raise RuntimeError("Server is not running")
        return self._httpd.server_address[1]

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> str:
        """Bind an ephemeral port, serve in a daemon thread, wait until ready."""
        handler = partial(SpaRequestHandler, directory=str(self.folder), api_prefix=self.api_prefix)
        self._httpd = ThreadingHTTPServer((self.host, 0), handler)
        self._httpd.daemon_threads = True
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="spa-snapshot-server", daemon=True
        )
        self._thread.start()
        logger.info(f"[SERVER] Hosting static app at: {self.base_url}")
        try:
            self.wait_until_available()
        except ServerStartupError:
            self.stop()
            raise
        return self.base_url

    def wait_until_available(self) -> None:
        deadline = time.monotonic() + self.ready_timeout_s
        last_error = ""
        while time.monotonic() < deadline:
            try:
                response = requests.get(self.base_url, timeout=1.0)
                if response.status_code < 500:
                    logger.info("[SERVER] Confirmed ready.")
                    return
                last_error = f"HTTP {response.status_code}"
            except requests.RequestException as exc:
                last_error = str(exc)
            time.sleep(_READY_POLL_INTERVAL_S)
        raise ServerStartupError(
            f"Server at {self.base_url} did not become available in time ({last_error})"
        )

    def stop(self) -> None:
        if self._httpd is None:
            return
        logger.info("[SERVER] Shutting down...")
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._httpd = None
        self._thread = None

    def __enter__(self) -> "StaticSiteServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
