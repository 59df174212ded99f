from __future__ import annotations

import os

import pytest

from engine.paths import resolve_config_path, resolve_download_path


def test_resolve_download_path_stays_under_downloads(tmp_path) -> None:
    base = str(tmp_path / "downloads")

    assert resolve_download_path("alice_1.mp4", base) == os.path.join(os.path.abspath(base), "alice_1.mp4")
    for hostile in ("../escape.mp4", "nested/clip.mp4", "", "/etc/passwd"):
        with pytest.raises(ValueError):
            resolve_download_path(hostile, base)


def test_resolve_config_path_defaults_and_rejects_escape(tmp_path) -> None:
    config_dir = str(tmp_path / "config")

    assert resolve_config_path(None, config_dir) == os.path.join(os.path.abspath(config_dir), "config.json")
    assert resolve_config_path("prod.json", config_dir).endswith("prod.json")
    with pytest.raises(ValueError):
        resolve_config_path("../outside.json", config_dir)
