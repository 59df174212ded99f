#!/usr/bin/env python3
"""HTTP event API that lets a chat transport process drive ``DeliverySession``."""

import base64
import binascii
import functools
import hmac
import json
import logging
import os

import anyio
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from db.accounts import SqliteAccountStore
from db.history import SqliteHistoryStore
from engine.config import build_settings, load_config_if_present, setup_logging, validate_config
from engine.delivery import NullDeliverer, build_delivery_session
from engine.json_utils import safe_json
from engine.paths import build_engine_paths, resolve_config_path
from engine.telegram_delivery import TelegramDeliverer

APP_NAME = "vidpurse API"
_BASIC_AUTH_USER = os.environ.get("VIDPURSE_BASIC_AUTH_USER")
_BASIC_AUTH_PASS = os.environ.get("VIDPURSE_BASIC_AUTH_PASS")
_BASIC_AUTH_ENABLED = bool(_BASIC_AUTH_USER and _BASIC_AUTH_PASS)


def _env_or_default(name, default):
    value = os.environ.get(name)
    return value if value else default


def _check_basic_auth(header_value):
    if not header_value or not header_value.startswith("Basic "):
        return False
    token = header_value[6:].strip()
    try:
        decoded = base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False
    if ":" not in decoded:
        return False
    user, password = decoded.split(":", 1)
    return hmac.compare_digest(user, _BASIC_AUTH_USER) and hmac.compare_digest(password, _BASIC_AUTH_PASS)


class UserEvent(BaseModel):
    user_id: str
    display_name: str | None = None


class SearchEvent(UserEvent):
    query: str = ""


class PageEvent(UserEvent):
    page: int


class IndexEvent(UserEvent):
    index: int


class TopupEvent(UserEvent):
    amount: str


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return json.dumps(
            safe_json(content),
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")


app = FastAPI(
    title=APP_NAME,
    description="Search, preview and paid delivery events for chat transports.",
    default_response_class=SafeJSONResponse,
)


@app.middleware("http")
async def basic_auth_middleware(request: Request, call_next):
    if not _BASIC_AUTH_ENABLED:
        return await call_next(request)
    if request.method == "OPTIONS" or request.url.path == "/healthz":
        return await call_next(request)
    auth_header = request.headers.get("authorization")
    if not _check_basic_auth(auth_header):
        return PlainTextResponse(
            "Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": "Basic"},
        )
    return await call_next(request)


def _load_settings():
    try:
        config_path = resolve_config_path(os.environ.get("VIDPURSE_CONFIG"))
    except ValueError as exc:
        logging.error("Invalid config override: %s", exc)
        config_path = resolve_config_path(None)
    try:
        config = load_config_if_present(config_path)
    except (OSError, json.JSONDecodeError) as exc:
        logging.error("Failed to read config %s: %s", config_path, exc)
        config = {}
    errors = validate_config(config)
    if errors:
        logging.error("Config %s ignored: %s", config_path, "; ".join(errors))
        config = {}
    return build_settings(config)


@app.on_event("startup")
async def startup():
    # Tests and embedding hosts may install their own orchestrator first.
    if getattr(app.state, "delivery", None) is not None:
        return
    paths = build_engine_paths()
    setup_logging(paths.log_dir)
    settings = _load_settings()
    history = SqliteHistoryStore(paths.db_path)
    history.ensure_schema()
    accounts = SqliteAccountStore(paths.db_path)
    accounts.ensure_schema()
    if settings.telegram_bot_token:
        deliverer = TelegramDeliverer(settings.telegram_bot_token)
    else:
        logging.warning("No Telegram bot token configured; files will not be delivered")
        deliverer = NullDeliverer()
    app.state.paths = paths
    app.state.history = history
    app.state.delivery = build_delivery_session(
        settings,
        account_store=accounts,
        history=history,
        deliverer=deliverer,
        downloads_dir=paths.downloads_dir,
    )
    logging.info("%s started db=%s downloads=%s", APP_NAME, paths.db_path, paths.downloads_dir)


async def _run_event(method_name, *args):
    delivery = app.state.delivery
    handler = getattr(delivery, method_name)
    payload = await anyio.to_thread.run_sync(functools.partial(handler, *args))
    return payload.to_dict()


@app.get("/healthz")
async def healthz():
    delivery = getattr(app.state, "delivery", None)
    return {
        "status": "ok" if delivery is not None else "starting",
        "app": APP_NAME,
        "sessions": len(delivery.sessions) if delivery is not None else 0,
    }


@app.post("/events/search")
async def search_event(payload: SearchEvent):
    return await _run_event("on_search_command", payload.user_id, payload.query, payload.display_name)


@app.post("/events/paginate")
async def paginate_event(payload: PageEvent):
    return await _run_event("on_paginate", payload.user_id, payload.page, payload.display_name)


@app.post("/events/select")
async def select_event(payload: IndexEvent):
    return await _run_event("on_select", payload.user_id, payload.index, payload.display_name)


@app.post("/events/download")
async def download_event(payload: IndexEvent):
    return await _run_event("on_confirm_download", payload.user_id, payload.index, payload.display_name)


@app.post("/events/watch/request")
async def watch_request_event(payload: IndexEvent):
    return await _run_event("on_request_watch", payload.user_id, payload.index, payload.display_name)


@app.post("/events/watch/confirm")
async def watch_confirm_event(payload: IndexEvent):
    return await _run_event("on_confirm_watch", payload.user_id, payload.index, payload.display_name)


@app.post("/events/watch/cancel")
async def watch_cancel_event(payload: IndexEvent):
    return await _run_event("on_cancel_watch", payload.user_id, payload.index, payload.display_name)


@app.post("/events/topup")
async def topup_event(payload: TopupEvent):
    return await _run_event("on_topup", payload.user_id, payload.amount, payload.display_name)


@app.get("/users/{user_id}/balance")
async def user_balance(user_id: str):
    return await _run_event("on_balance", user_id)


@app.get("/users/{user_id}/history")
async def user_history(user_id: str, limit: int = 5):
    if limit < 1 or limit > 100:
        raise HTTPException(status_code=400, detail="limit must be between 1 and 100")
    return await _run_event("on_history", user_id, limit)


@app.get("/stats")
async def stats():
    history = getattr(app.state, "history", None)
    get_stats = getattr(history, "get_stats", None)
    if get_stats is None:
        raise HTTPException(status_code=404, detail="stats are not available without a database")
    return await anyio.to_thread.run_sync(get_stats)


if __name__ == "__main__":
    import uvicorn

    host = _env_or_default("VIDPURSE_HOST", "127.0.0.1")
    port = int(_env_or_default("VIDPURSE_PORT", "8000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
