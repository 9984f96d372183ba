"""
Tests for snapshot output and _headers / _redirects generation.
"""

import pytest

from spa_snapshot.materialize import (
    build_header_rules,
    build_redirect_rules,
    save_snapshots,
    snapshot_file,
    to_upper_camel_case,
    update_rule_files,
)
from spa_snapshot.protocol import SnapshotRecord


def rule_pairs(rules):
    return [tuple(rule.split()) for rule in rules]


class TestSnapshotFiles:

    @pytest.mark.parametrize("route,expected", [
        ("about", ("about", "index.html")),
        ("contact/us", ("contact", "us", "index.html")),
        ("/docs/", ("docs", "index.html")),
        ("", ("index", "index.html")),
        ("index.html", ("index", "index.html")),
    ])
    def test_snapshot_file(self, tmp_path, route, expected):
        assert snapshot_file(tmp_path, route) == tmp_path.joinpath(*expected)

    def test_save_snapshots(self, tmp_path):
        records = [
            SnapshotRecord("about", "<p>about é</p>"),
            SnapshotRecord("contact/us", "<p>contact</p>"),
        ]
        written = save_snapshots(tmp_path, records)

        assert written == [
            tmp_path / "about" / "index.html",
            tmp_path / "contact" / "us" / "index.html",
        ]
        assert written[0].read_text(encoding="utf-8") == "<p>about é</p>"

    def test_overwrites_existing_snapshot(self, tmp_path):
        save_snapshots(tmp_path, [SnapshotRecord("about", "old")])
        save_snapshots(tmp_path, [SnapshotRecord("about", "new")])
        assert (tmp_path / "about" / "index.html").read_text() == "new"


class TestUpperCamelCase:

    @pytest.mark.parametrize("value,expected", [
        ("about", "About"),
        ("about-us/team", "About-Us/Team"),
        ("BLOG post", "Blog Post"),
        ("", ""),
    ])
    def test_conversion(self, value, expected):
        assert to_upper_camel_case(value) == expected


class TestHeaderRules:

    def test_root_rules_always_present(self):
        rules = build_header_rules([])
        assert rules == [
            '/\n  Cache-Control: no-store\n  ETag: ""',
            '/index.html\n  Cache-Control: no-store\n  ETag: ""',
        ]

    def test_shared_segment_gets_wildcard(self):
        targets = [r.splitlines()[0] for r in build_header_rules(["blog/a", "blog/b", "about"])]
        assert "/blog/*" in targets
        assert "/blog/a" not in targets
        assert "/about" in targets
        assert "/about/" in targets

    def test_existing_targets_are_skipped(self):
        existing = ["/about", "  Cache-Control: no-store", '  ETag: ""']
        targets = [r.splitlines()[0] for r in build_header_rules(["about"], existing)]
        assert "/about" not in targets
        assert "/about/" in targets


class TestRedirectRules:

    def test_single_route(self):
        pairs = rule_pairs(build_redirect_rules(["about"]))
        assert pairs == [
            ("/About", "/about/", "200!"),
            ("/about", "/about/", "200!"),
            ("/about/", "/about", "200!"),
        ]

    def test_nested_route(self):
        pairs = rule_pairs(build_redirect_rules(["contact-us/team"]))
        assert ("/Contact-Us/Team", "/contact-us/team/", "200!") in pairs

    def test_existing_sources_are_skipped(self):
        existing = ["/About               /about/ 200!", "/about/ /about 200!"]
        assert build_redirect_rules(["about"], existing) == []


class TestUpdateRuleFiles:

    def test_creates_files(self, tmp_path):
        update_rule_files(tmp_path, ["about", "blog/a", "blog/b"])

        headers = (tmp_path / "_headers").read_text()
        redirects = (tmp_path / "_redirects").read_text()
        assert "/blog/*\n  Cache-Control: no-store" in headers
        assert ("/about/", "/about", "200!") in rule_pairs(redirects.splitlines())

    def test_is_idempotent(self, tmp_path):
        update_rule_files(tmp_path, ["about", "contact/us"])
        first_headers = (tmp_path / "_headers").read_text()
        first_redirects = (tmp_path / "_redirects").read_text()

        update_rule_files(tmp_path, ["about", "contact/us"])

        assert (tmp_path / "_headers").read_text() == first_headers
        assert (tmp_path / "_redirects").read_text() == first_redirects

    def test_keeps_existing_rules(self, tmp_path):
        (tmp_path / "_redirects").write_text("/old /new 301\n")
        (tmp_path / "_headers").write_text("/assets/*\n  Cache-Control: max-age=31536000\n")

        update_rule_files(tmp_path, ["about"])

        redirects = (tmp_path / "_redirects").read_text().splitlines()
        headers = (tmp_path / "_headers").read_text()
        assert redirects[0] == "/old /new 301"
        assert headers.startswith("/assets/*\n  Cache-Control: max-age=31536000\n/\n")
