"""Outbound HTTP for search pages, detail pages and media files."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import FETCH_MAX_REDIRECTS, FETCH_TIMEOUT_SECONDS, FETCH_USER_AGENT
from engine.errors import UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class DownloadedFile:
    path: str
    size_bytes: int
    content_type: str | None


class FetchClient:
    """Thin ``requests`` wrapper with a timeout and redirect cap on every call.

    Timeouts surface as :class:`UpstreamTimeout` (retryable); every other
    transport or HTTP failure surfaces as :class:`UpstreamUnavailable`.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
        max_redirects: int = FETCH_MAX_REDIRECTS,
        user_agent: str = FETCH_USER_AGENT,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_redirects = max(0, int(max_redirects))
        self.user_agent = user_agent
        self._session = session or self._build_session()
        self._session.max_redirects = self.max_redirects

    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=2,
            connect=2,
            read=0,
            backoff_factor=0.4,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _get(self, url: str, *, params: dict[str, Any] | None = None, stream: bool = False) -> requests.Response:
        try:
            resp = self._session.get(
                url,
                params=params or None,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
                allow_redirects=True,
                stream=stream,
            )
        except requests.Timeout as exc:
            logger.warning("fetch timeout url=%s timeout=%ss", url, self.timeout_seconds)
            raise UpstreamTimeout(url=url) from exc
        except requests.TooManyRedirects as exc:
            logger.warning("fetch redirect limit exceeded url=%s max=%s", url, self.max_redirects)
            raise UpstreamUnavailable(url=url, reason="too_many_redirects") from exc
        except requests.RequestException as exc:
            logger.warning("fetch failed url=%s error=%s", url, exc)
            raise UpstreamUnavailable(url=url, reason=type(exc).__name__) from exc

        status = int(resp.status_code)
        if not 200 <= status < 400:
            resp.close()
            logger.warning("fetch bad status url=%s status=%s", url, status)
            raise UpstreamUnavailable(url=url, status=status)
        return resp

    def fetch_text(self, url: str, params: dict[str, Any] | None = None) -> str:
        resp = self._get(url, params=params)
        logger.info("fetch ok url=%s status=%s bytes=%s", resp.url or url, resp.status_code, len(resp.content or b""))
        return resp.text or ""

    def fetch_to_file(self, url: str, dest_path: str) -> DownloadedFile:
        """Stream ``url`` into ``dest_path`` and return what landed on disk."""
        resp = self._get(url, stream=True)
        dest = Path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = dest.with_suffix(f"{dest.suffix}.part")
        content_type = resp.headers.get("content-type")
        try:
            with open(tmp_path, "wb") as handle:
                for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
            tmp_path.replace(dest)
        except requests.Timeout as exc:
            tmp_path.unlink(missing_ok=True)
            raise UpstreamTimeout(url=url) from exc
        except (requests.RequestException, OSError) as exc:
            tmp_path.unlink(missing_ok=True)
            logger.warning("download failed url=%s error=%s", url, exc)
            raise UpstreamUnavailable(url=url, reason=type(exc).__name__) from exc
        finally:
            resp.close()

        size = os.path.getsize(dest)
        logger.info("download ok url=%s path=%s bytes=%s type=%s", url, dest, size, content_type or "unknown")
        return DownloadedFile(path=str(dest), size_bytes=size, content_type=content_type)


_CLIENT: FetchClient | None = None
_CLIENT_LOCK = threading.Lock()


def get_fetch_client() -> FetchClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is None:
            _CLIENT = FetchClient()
    return _CLIENT
