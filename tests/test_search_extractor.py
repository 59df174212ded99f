from __future__ import annotations

from bs4 import BeautifulSoup

from engine.search_extractor import (
    LinkScanStrategy,
    ListingCardStrategy,
    ResultExtractor,
    SearchService,
    build_detail_url,
    default_strategies,
)

BASE = "https://site.test/"

CARDS_HTML = """
<html><body>
  <div class="listn" id="card-a">
    <a href="/redirect.php?v=111222"><img src="https://img.test/a.jpg" alt="Sunset timelapse https://t.co/x #sky"></a>
    <div class="user"><a href="/u/alice"><span> alice </span></a></div>
  </div>
  <div class="listn">
    <a href="/redirect.php?foo=1&amp;v=333444"><img src="https://img.test/b.jpg"></a>
    <div class="user"><a href="/u/bob"><span>bob</span></a></div>
  </div>
  <div class="listn">
    <img src="https://img.test/c.jpg">
  </div>
  <a href="/about">About this website</a>
</body></html>
"""

LINKS_HTML = """
<html><body>
  <a href="/">Home page</a>
  <a href="/menu">Main menu here</a>
  <a href="javascript:void(0)">Open something</a>
  <a href="/x">short</a>
  <a href="/watch/1">First interesting video</a>
  <a href="https://other.test/watch/2">Second interesting video</a>
</body></html>
"""


def test_listing_cards_are_extracted_in_document_order() -> None:
    results = ResultExtractor(default_strategies(BASE)).extract(CARDS_HTML, "sunset")

    assert [r.username for r in results] == ["alice", "bob", ""]
    first = results[0]
    assert first.id == "card-a"
    assert first.title.startswith("Sunset timelapse")
    assert first.thumbnail_url == "https://img.test/a.jpg"
    assert first.source_video_id == "111222"
    assert first.detail_url == "https://site.test/twjn.php?v=111222"
    assert first.query == "sunset"


def test_listing_card_title_falls_back_to_username_then_position() -> None:
    results = ListingCardStrategy(BASE).extract(BeautifulSoup(CARDS_HTML, "html.parser"), "q")

    assert results[1].title == "bob"
    assert results[1].source_video_id == "333444"
    assert results[2].title == "Video 3"
    assert results[2].id == "result_2"
    assert results[2].detail_url == ""


def test_link_scan_fallback_filters_navigation_and_scripts() -> None:
    results = ResultExtractor(default_strategies(BASE)).extract(LINKS_HTML, "q")

    assert [r.title for r in results] == ["First interesting video", "Second interesting video"]
    assert results[0].detail_url == "https://site.test/watch/1"
    assert results[1].detail_url == "https://other.test/watch/2"
    assert results[0].id == "result_0"
    assert results[0].source_video_id is None


def test_link_scan_respects_limit() -> None:
    anchors = "".join(f'<a href="/v/{i}">Interesting video {i}</a>' for i in range(40))
    results = ResultExtractor([LinkScanStrategy(BASE, limit=20)]).extract(f"<body>{anchors}</body>", "q")

    assert len(results) == 20


def test_empty_or_malformed_documents_return_no_results() -> None:
    extractor = ResultExtractor(default_strategies(BASE))

    assert extractor.extract("", "q") == []
    assert extractor.extract(None, "q") == []
    assert extractor.extract("<<<not really html", "q") == []
    assert extractor.extract(b"<div class='listn'></div>", "q") == []


def test_build_detail_url_without_id_is_empty() -> None:
    assert build_detail_url(BASE, None) == ""
    assert build_detail_url(BASE, "5") == "https://site.test/twjn.php?v=5"


class _StubFetchClient:
    def __init__(self, html: str) -> None:
        self.html = html
        self.calls = []

    def fetch_text(self, url, params=None):
        self.calls.append((url, params))
        return self.html


def test_search_service_queries_search_endpoint() -> None:
    client = _StubFetchClient(CARDS_HTML)
    service = SearchService(fetch_client=client, base_url=BASE)

    results = service.search("sunset")

    assert client.calls == [("https://site.test/search.php", {"search": "sunset"})]
    assert len(results) == 3
