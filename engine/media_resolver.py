"""Resolve a directly fetchable media URL from a result's detail page.

Detail pages differ by content type, so resolution walks a fixed priority
list of heuristics and stops at the first hit. Nothing here raises for a
missing URL or an unreachable page: ``None`` means "not available for this
item".
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup

from config.settings import MEDIA_HOST
from engine.errors import UpstreamError
from engine.http_client import FetchClient, get_fetch_client
from engine.models import ResolvedMedia, utc_now

logger = logging.getLogger(__name__)


class ResolveStrategy:
    name = ""

    def find(self, soup: BeautifulSoup, html: str) -> str | None:
        raise NotImplementedError


class AnchorStrategy(ResolveStrategy):
    """An anchor whose href, or else visible text, names an mp4 on the media host."""

    name = "anchor"

    def __init__(self, media_host: str = MEDIA_HOST) -> None:
        self.media_host = media_host

    def _matches(self, value: str) -> bool:
        return bool(value) and self.media_host in value and ".mp4" in value

    def find(self, soup, html):
        for anchor in soup.find_all("a"):
            href = (anchor.get("href") or "").strip()
            if self._matches(href):
                return href
            text = anchor.get_text().strip()
            if self._matches(text):
                return text
        return None


class VideoSourceStrategy(ResolveStrategy):
    name = "video_source"

    def find(self, soup, html):
        source = soup.select_one("video source")
        if source is None:
            return None
        src = (source.get("src") or "").strip()
        return src or None


class InlineScriptStrategy(ResolveStrategy):
    name = "inline_script"

    def __init__(self, media_host: str = MEDIA_HOST) -> None:
        self.pattern = re.compile(rf"https://{re.escape(media_host)}/[^\"'\s]+\.mp4[^\"'\s]*")

    def find(self, soup, html):
        for script in soup.find_all("script"):
            body = script.string or script.get_text()
            if not body:
                continue
            match = self.pattern.search(body)
            if match:
                return match.group(0)
        return None


class PagePatternStrategy(ResolveStrategy):
    """Path-shaped media URL anywhere in the raw page."""

    name = "page_pattern"

    def __init__(self, media_host: str = MEDIA_HOST) -> None:
        self.pattern = re.compile(
            rf"https://{re.escape(media_host)}/ext_tw_video/\d+/pu/vid/\d+x\d+/[^\"'\s<>]+\.mp4[^\"'\s<>]*"
        )

    def find(self, soup, html):
        match = self.pattern.search(html or "")
        return match.group(0) if match else None


def default_strategies(media_host: str = MEDIA_HOST) -> list[ResolveStrategy]:
    return [
        AnchorStrategy(media_host),
        VideoSourceStrategy(),
        InlineScriptStrategy(media_host),
        PagePatternStrategy(media_host),
    ]


class MediaResolver:
    def __init__(
        self,
        *,
        fetch_client: FetchClient | None = None,
        strategies: list[ResolveStrategy] | None = None,
    ) -> None:
        self._fetch_client = fetch_client
        self.strategies = strategies or default_strategies()

    @property
    def fetch_client(self) -> FetchClient:
        if self._fetch_client is None:
            self._fetch_client = get_fetch_client()
        return self._fetch_client

    def resolve_html(self, html: str) -> ResolvedMedia | None:
        if not html:
            return None
        try:
            soup = BeautifulSoup(html, "html.parser")
        except Exception:
            logger.exception("Detail page parsing failed")
            return None
        for strategy in self.strategies:
            try:
                url = strategy.find(soup, html)
            except Exception:
                logger.exception("Resolve strategy %s failed", strategy.name)
                continue
            if url:
                logger.info("media resolved strategy=%s url=%s", strategy.name, url)
                return ResolvedMedia(direct_url=url, resolved_at=utc_now(), strategy=strategy.name)
        return None

    def resolve(self, detail_url: str) -> ResolvedMedia | None:
        if not detail_url:
            logger.info("media resolve skipped: result has no detail page")
            return None
        try:
            html = self.fetch_client.fetch_text(detail_url)
        except UpstreamError as exc:
            logger.warning("media resolve fetch failed url=%s code=%s", detail_url, exc.code)
            return None
        resolved = self.resolve_html(html)
        if resolved is None:
            logger.info("media URL not found on detail page url=%s", detail_url)
        return resolved
