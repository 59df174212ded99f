"""Search-results page parsing.

The source site renders results as ``.listn`` cards, but the markup is not
stable, so extraction is an ordered list of strategies: the first strategy
that yields anything wins. A parse failure is never an error for the caller;
it degrades to "no results".
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from config.settings import (
    DETAIL_ENDPOINT,
    FALLBACK_RESULT_LIMIT,
    SEARCH_ENDPOINT,
    SITE_BASE_URL,
)
from engine.http_client import FetchClient, get_fetch_client
from engine.models import SearchResult

logger = logging.getLogger(__name__)

_REDIRECT_VIDEO_ID_RE = re.compile(r"[?&]v=(\d+)")
_NAVIGATION_WORDS = ("home", "menu")
_MIN_LINK_TEXT = 6
_MAX_LINK_TEXT = 199
DEFAULT_CATEGORY = "video"


def build_detail_url(base_url: str, video_id: str | None) -> str:
    if not video_id:
        return ""
    return urljoin(base_url, f"{DETAIL_ENDPOINT}?v={video_id}")


class ExtractionStrategy:
    name = ""

    def extract(self, soup: BeautifulSoup, query: str) -> list[SearchResult]:
        raise NotImplementedError


class ListingCardStrategy(ExtractionStrategy):
    """Structured ``.listn`` result cards carrying a numeric redirect id."""

    name = "listing_cards"
    container_selector = ".listn"

    def __init__(self, base_url: str = SITE_BASE_URL) -> None:
        self.base_url = base_url

    def extract(self, soup, query):
        results = []
        for index, item in enumerate(soup.select(self.container_selector)):
            username_node = item.select_one(".user a span")
            username = username_node.get_text().strip() if username_node else ""

            img = item.find("img")
            thumbnail = img.get("src") if img else None
            alt = (img.get("alt") or "").strip() if img else ""

            video_id = None
            redirect = item.select_one('a[href*="redirect.php"]')
            if redirect:
                match = _REDIRECT_VIDEO_ID_RE.search(redirect.get("href") or "")
                if match:
                    video_id = match.group(1)

            results.append(
                SearchResult(
                    id=item.get("id") or f"result_{index}",
                    title=alt or username or f"Video {index + 1}",
                    username=username,
                    thumbnail_url=thumbnail,
                    detail_url=build_detail_url(self.base_url, video_id),
                    source_video_id=video_id,
                    category=DEFAULT_CATEGORY,
                    description=alt,
                    query=query,
                )
            )
        return results


class LinkScanStrategy(ExtractionStrategy):
    """Generic anchor scan used when no result cards are present."""

    name = "link_scan"

    def __init__(self, base_url: str = SITE_BASE_URL, limit: int = FALLBACK_RESULT_LIMIT) -> None:
        self.base_url = base_url
        self.limit = limit

    def _accept(self, text: str, href: str) -> bool:
        if not text or not href:
            return False
        if not _MIN_LINK_TEXT <= len(text) <= _MAX_LINK_TEXT:
            return False
        if "javascript:" in href.lower():
            return False
        lowered = text.lower()
        return not any(word in lowered for word in _NAVIGATION_WORDS)

    def extract(self, soup, query):
        results = []
        for anchor in soup.find_all("a", href=True):
            text = anchor.get_text().strip()
            href = (anchor.get("href") or "").strip()
            if not self._accept(text, href):
                continue
            index = len(results)
            results.append(
                SearchResult(
                    id=f"result_{index}",
                    title=text,
                    username="",
                    thumbnail_url=None,
                    detail_url=urljoin(self.base_url, href),
                    category=DEFAULT_CATEGORY,
                    description=text,
                    query=query,
                )
            )
            if len(results) >= self.limit:
                break
        return results


def default_strategies(base_url: str = SITE_BASE_URL, fallback_limit: int = FALLBACK_RESULT_LIMIT):
    return [ListingCardStrategy(base_url), LinkScanStrategy(base_url, fallback_limit)]


class ResultExtractor:
    def __init__(self, strategies: list[ExtractionStrategy] | None = None) -> None:
        self.strategies = strategies or default_strategies()

    def extract(self, html, query: str = "") -> list[SearchResult]:
        if not html or not isinstance(html, str):
            return []
        try:
            soup = BeautifulSoup(html, "html.parser")
            for strategy in self.strategies:
                results = strategy.extract(soup, query)
                if results:
                    logger.info(
                        "extracted results=%s strategy=%s query=%r",
                        len(results),
                        strategy.name,
                        query,
                    )
                    return results
                logger.debug("strategy=%s found nothing, trying next", strategy.name)
        except Exception:
            logger.exception("Search result parsing failed for query=%r", query)
            return []
        logger.info("extracted results=0 query=%r", query)
        return []


class SearchService:
    """Fetches the site's search page and hands it to the extractor."""

    def __init__(
        self,
        *,
        fetch_client: FetchClient | None = None,
        extractor: ResultExtractor | None = None,
        base_url: str = SITE_BASE_URL,
    ) -> None:
        self.fetch_client = fetch_client or get_fetch_client()
        self.base_url = base_url
        self.extractor = extractor or ResultExtractor(default_strategies(base_url))

    def search(self, query: str) -> list[SearchResult]:
        url = urljoin(self.base_url, SEARCH_ENDPOINT)
        logger.info("search request url=%s query=%r", url, query)
        html = self.fetch_client.fetch_text(url, params={"search": query})
        return self.extractor.extract(html, query)
