"""JSON config file loading, validation and the resolved delivery settings."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from config import settings
from engine.paths import ensure_dir

_INT_FIELDS = ("watch_cost", "download_cost", "opening_balance", "items_per_page", "fallback_result_limit")
_BOOL_FIELDS = ("refund_on_watch_cancel", "refund_on_delivery_failure")


@dataclass(frozen=True)
class DeliverySettings:
    site_base_url: str = settings.SITE_BASE_URL
    media_host: str = settings.MEDIA_HOST
    watch_cost: int = settings.WATCH_COST
    download_cost: int = settings.DOWNLOAD_COST
    opening_balance: int = settings.OPENING_BALANCE
    items_per_page: int = settings.ITEMS_PER_PAGE
    fallback_result_limit: int = settings.FALLBACK_RESULT_LIMIT
    fetch_timeout_seconds: float = settings.FETCH_TIMEOUT_SECONDS
    fetch_max_redirects: int = settings.FETCH_MAX_REDIRECTS
    user_agent: str = settings.FETCH_USER_AGENT
    refund_on_watch_cancel: bool = settings.REFUND_ON_WATCH_CANCEL
    refund_on_delivery_failure: bool = settings.REFUND_ON_DELIVERY_FAILURE
    telegram_bot_token: str | None = None


def load_config(path):
    with open(path, "r") as f:
        return json.load(f)


def load_config_if_present(path):
    if not path or not os.path.exists(path):
        return {}
    return load_config(path)


def validate_config(config):
    errors = []
    if not isinstance(config, dict):
        return ["config must be a JSON object"]

    for key in _INT_FIELDS:
        value = config.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{key} must be an integer")
        elif value < 0:
            errors.append(f"{key} must not be negative")
    for key in ("items_per_page", "fallback_result_limit"):
        value = config.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value == 0:
            errors.append(f"{key} must be at least 1")

    for key in _BOOL_FIELDS:
        value = config.get(key)
        if value is not None and not isinstance(value, bool):
            errors.append(f"{key} must be true/false")

    site = config.get("site_base_url")
    if site is not None:
        parsed = urlparse(site) if isinstance(site, str) else None
        if not parsed or parsed.scheme not in {"http", "https"} or not parsed.netloc:
            errors.append("site_base_url must be an http(s) URL")

    fetch = config.get("fetch")
    if fetch is not None:
        if not isinstance(fetch, dict):
            errors.append("fetch must be an object")
        else:
            timeout = fetch.get("timeout_seconds")
            if timeout is not None:
                try:
                    if float(timeout) <= 0:
                        errors.append("fetch.timeout_seconds must be positive")
                except (TypeError, ValueError):
                    errors.append("fetch.timeout_seconds must be a number")
            redirects = fetch.get("max_redirects")
            if redirects is not None and (
                isinstance(redirects, bool) or not isinstance(redirects, int) or redirects < 0
            ):
                errors.append("fetch.max_redirects must be a non-negative integer")

    telegram = config.get("telegram")
    if telegram is not None:
        if not isinstance(telegram, dict):
            errors.append("telegram must be an object")
        elif telegram.get("bot_token") is not None and not isinstance(telegram.get("bot_token"), str):
            errors.append("telegram.bot_token must be a string")

    return errors


def build_settings(config=None) -> DeliverySettings:
    """Overlay validated config values onto the env-driven defaults."""
    config = config or {}
    errors = validate_config(config)
    if errors:
        raise ValueError("invalid config: " + "; ".join(errors))

    overrides = {}
    for key in _INT_FIELDS + _BOOL_FIELDS:
        if config.get(key) is not None:
            overrides[key] = config[key]
    site = config.get("site_base_url")
    if site:
        overrides["site_base_url"] = site if site.endswith("/") else site + "/"
    if config.get("media_host"):
        overrides["media_host"] = str(config["media_host"])
    fetch = config.get("fetch") or {}
    if fetch.get("timeout_seconds") is not None:
        overrides["fetch_timeout_seconds"] = float(fetch["timeout_seconds"])
    if fetch.get("max_redirects") is not None:
        overrides["fetch_max_redirects"] = int(fetch["max_redirects"])
    if fetch.get("user_agent"):
        overrides["user_agent"] = str(fetch["user_agent"])
    telegram = config.get("telegram") or {}
    token = telegram.get("bot_token") or os.environ.get("VIDPURSE_TELEGRAM_BOT_TOKEN")
    if token:
        overrides["telegram_bot_token"] = token
    return DeliverySettings(**overrides)


def setup_logging(log_dir):
    ensure_dir(log_dir)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, "vidpurse.log")
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return handler
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)
    return file_handler
