"""Filesystem layout: data, config, downloads, logs and the SQLite database."""

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _in_container():
    return os.path.exists("/.dockerenv") or os.path.isdir("/data")


def _env_path(key, default):
    return Path(os.environ.get(key) or default).resolve()


_CONTAINER = _in_container()
_BASE = Path("/") if _CONTAINER else PROJECT_ROOT / "data"

DATA_DIR = _env_path("VIDPURSE_DATA_DIR", _BASE / "data" if _CONTAINER else _BASE)
CONFIG_DIR = _env_path("VIDPURSE_CONFIG_DIR", _BASE / "config")
DOWNLOADS_DIR = _env_path("VIDPURSE_DOWNLOADS_DIR", _BASE / "downloads")
LOG_DIR = _env_path("VIDPURSE_LOG_DIR", _BASE / "logs")
DB_PATH = _env_path("VIDPURSE_DB_PATH", DATA_DIR / "database" / "vidpurse.sqlite")


@dataclass(frozen=True)
class EnginePaths:
    log_dir: str
    db_path: str
    downloads_dir: str
    config_dir: str


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def _is_within_base(path, base_dir):
    real = os.path.realpath(path)
    base = os.path.realpath(base_dir)
    return os.path.commonpath([real, base]) == base


def resolve_config_path(path, config_dir=None):
    config_dir = str(config_dir or CONFIG_DIR)
    resolved = os.path.abspath(os.path.join(config_dir, path or "config.json"))
    if not _is_within_base(resolved, config_dir):
        raise ValueError(f"Config path must be within {config_dir}")
    return resolved


def resolve_download_path(filename, downloads_dir):
    """Join ``filename`` onto ``downloads_dir``, refusing anything that escapes it."""
    if not filename or os.path.basename(filename) != filename:
        raise ValueError(f"Download filename must be a bare file name: {filename!r}")
    resolved = os.path.abspath(os.path.join(downloads_dir, filename))
    if not _is_within_base(resolved, downloads_dir):
        raise ValueError(f"Path must be within base directory: {downloads_dir}")
    return resolved


def build_engine_paths():
    paths = EnginePaths(
        log_dir=str(LOG_DIR),
        db_path=str(DB_PATH),
        downloads_dir=str(DOWNLOADS_DIR),
        config_dir=str(CONFIG_DIR),
    )
    for directory in (os.path.dirname(paths.db_path), paths.log_dir, paths.downloads_dir, paths.config_dir):
        ensure_dir(directory)
    return paths
