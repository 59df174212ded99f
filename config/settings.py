"""Application settings constants."""

from __future__ import annotations

import os


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


# Source site layout. The base URL must end with a slash; detail and search
# endpoints are joined onto it.
SITE_BASE_URL = os.environ.get("VIDPURSE_SITE_URL", "https://monsnode.com/")
SEARCH_ENDPOINT = "search.php"
DETAIL_ENDPOINT = "twjn.php"
MEDIA_HOST = os.environ.get("VIDPURSE_MEDIA_HOST", "video.twimg.com")

# Pricing, in the smallest currency unit.
WATCH_COST = int(os.environ.get("VIDPURSE_WATCH_COST", "500"))
DOWNLOAD_COST = int(os.environ.get("VIDPURSE_DOWNLOAD_COST", "1000"))
OPENING_BALANCE = int(os.environ.get("VIDPURSE_OPENING_BALANCE", "0"))

ITEMS_PER_PAGE = 5
FALLBACK_RESULT_LIMIT = 20

FETCH_TIMEOUT_SECONDS = float(os.environ.get("VIDPURSE_FETCH_TIMEOUT_SECONDS", "30"))
FETCH_MAX_REDIRECTS = int(os.environ.get("VIDPURSE_FETCH_MAX_REDIRECTS", "5"))
FETCH_USER_AGENT = os.environ.get(
    "VIDPURSE_USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
)

# Refund policies for held or committed charges.
REFUND_ON_WATCH_CANCEL = _env_bool("VIDPURSE_REFUND_ON_WATCH_CANCEL", False)
REFUND_ON_DELIVERY_FAILURE = _env_bool("VIDPURSE_REFUND_ON_DELIVERY_FAILURE", True)
