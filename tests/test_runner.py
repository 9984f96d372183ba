"""
End-to-end tests for snapshot_site and the CLI with the crawl stubbed out.

The static server, route discovery and output writing all run for real;
only the browser crawl is replaced.
"""

import pytest
import requests

from spa_snapshot import __main__ as cli
from spa_snapshot.errors import RouteDiscoveryError
from spa_snapshot.protocol import SnapshotRecord
from spa_snapshot.run_config import SnapshotRunConfig
from spa_snapshot.runner import SnapshotResult, snapshot_site


SITEMAP = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
    "<url><loc>https://example.com/</loc></url>"
    "<url><loc>https://example.com/about</loc></url>"
    "<url><loc>https://example.com/contact/us</loc></url>"
    "</urlset>"
)


@pytest.fixture
def site(tmp_path):
    (tmp_path / "index.html").write_text("<html><body><div id=app></div></body></html>")
    (tmp_path / "robots.txt").write_text("Sitemap: https://example.com/sitemap.xml\n")
    (tmp_path / "sitemap.xml").write_text(SITEMAP)
    return tmp_path


@pytest.fixture
def fake_crawl(monkeypatch):
    calls = []

    def crawl(folder, routes, base_url, config=None):
        # the server must be up while the crawl runs
        assert requests.get(base_url + "/about?spa-snapshot=", timeout=5).status_code == 200
        calls.append((list(routes), base_url))
        return [SnapshotRecord(route, f"<main>{route or 'home'}</main>") for route in routes]

    monkeypatch.setattr("spa_snapshot.runner.run_crawl", crawl)
    return calls


class TestSnapshotSite:

    def test_writes_snapshots_and_rules(self, site, fake_crawl):
        result = snapshot_site(site, SnapshotRunConfig())

        assert result.routes == ["", "about", "contact/us"]
        assert fake_crawl[0][0] == ["", "about", "contact/us"]
        assert (site / "index" / "index.html").read_text() == "<main>home</main>"
        assert (site / "about" / "index.html").read_text() == "<main>about</main>"
        assert (site / "contact" / "us" / "index.html").read_text() == "<main>contact/us</main>"
        assert (site / "_headers").exists()
        assert (site / "_redirects").exists()
        assert len(result.written) == 3

    def test_rule_files_can_be_skipped(self, site, fake_crawl):
        snapshot_site(site, SnapshotRunConfig(write_rule_files=False))
        assert not (site / "_headers").exists()
        assert not (site / "_redirects").exists()

    def test_discovery_errors_propagate(self, tmp_path, fake_crawl):
        with pytest.raises(RouteDiscoveryError):
            snapshot_site(tmp_path)
        assert fake_crawl == []


class TestCli:

    def test_requires_folder(self):
        assert cli.main([]) == 1

    def test_success(self, site, monkeypatch, capsys):
        monkeypatch.setattr(
            cli, "snapshot_site",
            lambda folder, cfg: SnapshotResult(routes=["about"], written=[folder / "about"], elapsed_s=1.0),
        )
        assert cli.main(["--folder", str(site), "--timeout", "5"]) == 0
        assert "Routes discovered:   1" in capsys.readouterr().out

    def test_snapshot_error_exit_code(self, tmp_path):
        assert cli.main(["--folder", str(tmp_path / "missing")]) == 1

    def test_flags_reach_config(self, site, monkeypatch):
        seen = {}

        def fake(folder, cfg):
            seen["cfg"] = cfg
            return SnapshotResult()

        monkeypatch.setattr(cli, "snapshot_site", fake)
        cli.main(["--folder", str(site), "--headed", "--no-rules", "--timeout", "7"])

        cfg = seen["cfg"]
        assert cfg.headless is False
        assert cfg.write_rule_files is False
        assert cfg.completion_timeout_s == 7.0

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_non_positive_timeout_is_rejected(self, value):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--folder", ".", "--timeout", value])
