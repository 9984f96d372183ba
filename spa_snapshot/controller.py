"""
Snapshot Controller Page
========================
The document loaded into the browser instead of the target app.

It embeds the app in an iframe pointed at ``base_url?<marker>`` and relays
``window.postMessage`` traffic between the app and the host:

    host → page   window.sendNavigate(path, token)
    page → app    {type: "navigate", targetPath}
    app  → page   {type: "snapshot", html}
    page → host   onSnapshot(html, token)
    host → page   window.completeSession()
    page → host   onComplete()

The page keeps no route list of its own; the host decides what to load
next. It only remembers the token of the navigation in flight so it can
echo it back with the matching snapshot.
"""

from __future__ import annotations

import json
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

SNAPSHOT_CALLBACK = "onSnapshot"
COMPLETE_CALLBACK = "onComplete"

NAVIGATE_MESSAGE = "navigate"
SNAPSHOT_MESSAGE = "snapshot"

_CONTROLLER_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Snapshot Controller</title>
  <script>
    const appUrl = __APP_URL__;
    let frame = null;
    let inFlightToken = -1;

    window.sendNavigate = function (path, token) {
      inFlightToken = token;
      console.log('[Controller] navigate', token, path);
      frame.contentWindow.postMessage({ type: __NAVIGATE__, targetPath: path }, '*');
    };

    window.completeSession = function () {
      console.log('[Controller] all snapshots captured');
      window.__SNAPSHOT_DONE__();
    };

    window.addEventListener('message', (event) => {
      const data = event.data;
      if (!data || data.type !== __SNAPSHOT__) return;
      window.__SNAPSHOT_CB__(data.html, inFlightToken);
    });

    window.startSnapshotSession = function () {
      frame = document.createElement('iframe');
      frame.src = appUrl;
      frame.style.width = '100%';
      frame.style.height = '1000px';
      frame.style.border = '0';
      frame.onload = () => console.log('[Controller] app frame loaded');
      document.body.appendChild(frame);
    };
  </script>
</head>
<body>
  <h1>Snapshot Controller</h1>
</body>
</html>
"""


def add_marker_param(url: str, marker_param: str) -> str:
    """
    Append the snapshot marker as a valueless query parameter.

    ``http://localhost:5000`` → ``http://localhost:5000/?spa-snapshot=``;
    existing query parameters are kept and an existing marker is replaced.
    """
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != marker_param]
    query.append((marker_param, ""))
    path = parts.path or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), parts.fragment))


def _js_string(value: str) -> str:
    # keep "</script>" inside a URL from closing the inline script
    return json.dumps(value).replace("<", "\\u003c")


def render_controller(base_url: str, marker_param: str) -> str:
    """Return the controller document for an app served at ``base_url``."""
    replacements = {
        "__APP_URL__": _js_string(add_marker_param(base_url, marker_param)),
        "__NAVIGATE__": json.dumps(NAVIGATE_MESSAGE),
        "__SNAPSHOT__": json.dumps(SNAPSHOT_MESSAGE),
        "__SNAPSHOT_CB__": SNAPSHOT_CALLBACK,
        "__SNAPSHOT_DONE__": COMPLETE_CALLBACK,
    }
    html = _CONTROLLER_TEMPLATE
    for placeholder, value in replacements.items():
        html = html.replace(placeholder, value)
    return html
