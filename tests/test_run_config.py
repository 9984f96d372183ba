"""Tests for SnapshotRunConfig defaults and overrides."""

import argparse
from pathlib import Path

from spa_snapshot.run_config import SnapshotRunConfig


def test_defaults():
    cfg = SnapshotRunConfig()
    assert cfg.completion_timeout_s == 90.0
    assert cfg.headless is True
    assert cfg.force_download is False
    assert isinstance(cfg.cache_root, Path)


def test_archive_url():
    cfg = SnapshotRunConfig(archive_base_url="https://bundles.example.com/b/")
    assert cfg.archive_url("linux-x64") == "https://bundles.example.com/b/linux-x64.tar.xz?download=true"


def test_env_overrides():
    cfg = SnapshotRunConfig().with_env({
        "SPA_SNAPSHOT_CACHE_DIR": "/tmp/bundles",
        "SPA_SNAPSHOT_HEADLESS": "false",
        "SPA_SNAPSHOT_TIMEOUT": "12.5",
    })
    assert cfg.cache_root == Path("/tmp/bundles")
    assert cfg.headless is False
    assert cfg.completion_timeout_s == 12.5


def test_bad_env_timeout_is_ignored():
    cfg = SnapshotRunConfig().with_env({"SPA_SNAPSHOT_TIMEOUT": "soon"})
    assert cfg.completion_timeout_s == 90.0


def test_from_cli_args(monkeypatch, tmp_path):
    monkeypatch.delenv("SPA_SNAPSHOT_CACHE_DIR", raising=False)
    monkeypatch.delenv("SPA_SNAPSHOT_TIMEOUT", raising=False)
    monkeypatch.delenv("SPA_SNAPSHOT_HEADLESS", raising=False)
    args = argparse.Namespace(
        cache_dir=str(tmp_path),
        headed=True,
        timeout=30,
        force_download=True,
        no_rules=True,
    )
    cfg = SnapshotRunConfig.from_cli_args(args)
    assert cfg.cache_root == tmp_path
    assert cfg.headless is False
    assert cfg.completion_timeout_s == 30.0
    assert cfg.force_download is True
    assert cfg.write_rule_files is False


def test_zero_cli_timeout_is_not_dropped():
    args = argparse.Namespace(cache_dir=None, headed=False, timeout=0, force_download=False, no_rules=False)
    assert SnapshotRunConfig.from_cli_args(args).completion_timeout_s == 0.0
