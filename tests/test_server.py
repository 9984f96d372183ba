"""
Tests for the loopback static server and its SPA fallback.
"""

import pytest
import requests

from spa_snapshot.server import StaticSiteServer


INDEX = "<html><body>shell</body></html>"


@pytest.fixture
def server(tmp_path):
    (tmp_path / "index.html").write_text(INDEX)
    (tmp_path / "app.js").write_text("console.log('app')")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "guide.txt").write_text("guide")
    srv = StaticSiteServer(tmp_path)
    srv.start()
    yield srv
    srv.stop()


class TestStaticSiteServer:

    def test_serves_root(self, server):
        response = requests.get(server.base_url + "/", timeout=5)
        assert response.status_code == 200
        assert response.text == INDEX

    def test_serves_real_files(self, server):
        response = requests.get(server.base_url + "/app.js", timeout=5)
        assert response.status_code == 200
        assert "console.log" in response.text

        nested = requests.get(server.base_url + "/docs/guide.txt", timeout=5)
        assert nested.text == "guide"

    def test_client_route_falls_back_to_index(self, server):
        response = requests.get(server.base_url + "/contact/us?spa-snapshot=", timeout=5)
        assert response.status_code == 200
        assert response.text == INDEX

    def test_missing_asset_is_404(self, server):
        response = requests.get(server.base_url + "/missing.js", timeout=5)
        assert response.status_code == 404

    def test_api_paths_do_not_fall_back(self, server):
        assert requests.get(server.base_url + "/api", timeout=5).status_code == 404
        assert requests.get(server.base_url + "/api/users", timeout=5).status_code == 404

    def test_responses_are_not_cacheable(self, server):
        response = requests.get(server.base_url + "/app.js", timeout=5)
        assert response.headers["Cache-Control"] == "no-store"

    def test_ephemeral_loopback_port(self, server):
        assert server.port > 0
        assert server.base_url.startswith("http://127.0.0.1:")


def test_stop_releases_server(tmp_path):
    (tmp_path / "index.html").write_text(INDEX)
    with StaticSiteServer(tmp_path) as srv:
        url = srv.base_url
        assert requests.get(url, timeout=5).status_code == 200

    with pytest.raises(RuntimeError):
        srv.port
    with pytest.raises(requests.ConnectionError):
        requests.get(url, timeout=2)
