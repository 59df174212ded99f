"""Deliver files and messages to chat users through the Telegram Bot API."""

from __future__ import annotations

import logging
import os

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
_CAPTION_LIMIT = 1024


def format_caption(fields):
    lines = []
    title = (fields or {}).get("title")
    if title:
        lines.append(f"📹 {title}")
    username = (fields or {}).get("username")
    if username:
        lines.append(f"👤 {username}")
    size = (fields or {}).get("size")
    if size:
        lines.append(f"📦 {size}")
    caption = "\n".join(lines)
    if len(caption) > _CAPTION_LIMIT:
        caption = caption[: _CAPTION_LIMIT - 3] + "..."
    return caption


class TelegramDeliverer:
    """``Deliverer`` that posts to the Bot API; chat ids are the user ids."""

    def __init__(self, bot_token, *, api_base=TELEGRAM_API_BASE, timeout=15, upload_timeout=120, session=None):
        if not bot_token:
            raise ValueError("bot_token is required")
        self.bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self._session = session or requests.Session()

    def _url(self, method):
        return f"{self.api_base}/bot{self.bot_token}/{method}"

    def deliver_text(self, user_id, text):
        if not text:
            return False
        payload = {"chat_id": user_id, "text": text}
        try:
            resp = self._session.post(self._url("sendMessage"), json=payload, timeout=self.timeout)
            if resp.ok:
                return True
            logger.warning("Telegram sendMessage failed: %s", resp.text)
        except requests.RequestException:
            logger.exception("Telegram sendMessage failed")
        return False

    def deliver_file(self, user_id, local_path, caption_fields):
        if not local_path or not os.path.exists(local_path):
            logger.warning("Telegram sendVideo skipped: missing file %s", local_path)
            return False
        data = {
            "chat_id": user_id,
            "caption": format_caption(caption_fields),
            "supports_streaming": "true",
        }
        upload_name = (caption_fields or {}).get("filename") or os.path.basename(local_path)
        try:
            with open(local_path, "rb") as handle:
                resp = self._session.post(
                    self._url("sendVideo"),
                    data=data,
                    files={"video": (upload_name, handle, "video/mp4")},
                    timeout=self.upload_timeout,
                )
            if resp.ok:
                logger.info("Telegram video delivered user=%s file=%s", user_id, upload_name)
                return True
            logger.warning("Telegram sendVideo failed: %s", resp.text)
        except (requests.RequestException, OSError):
            logger.exception("Telegram sendVideo failed")
        return False
