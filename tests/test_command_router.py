from __future__ import annotations

from input.command_router import CommandType, detect_command, dispatch, parse_callback


def test_detect_search_aliases() -> None:
    for text in ("/cari funny cats", "/search funny cats", "/cari@vidpurse_bot funny cats"):
        command = detect_command(text)
        assert command.type == CommandType.SEARCH
        assert command.argument == "funny cats"


def test_detect_topup_and_account_commands() -> None:
    topup = detect_command("/topup 50000")
    assert topup.type == CommandType.TOPUP
    assert topup.argument == "50000"

    assert detect_command("/saldo").type == CommandType.BALANCE
    assert detect_command("/balance").type == CommandType.BALANCE
    assert detect_command("/history").type == CommandType.HISTORY
    assert detect_command("/start").type == CommandType.HELP


def test_plain_text_and_unknown_commands() -> None:
    assert detect_command("just chatting").type == CommandType.UNKNOWN
    assert detect_command("/frobnicate now").type == CommandType.UNKNOWN
    assert detect_command("").type == CommandType.UNKNOWN


def test_search_without_keyword_keeps_empty_argument() -> None:
    command = detect_command("/cari")

    assert command.type == CommandType.SEARCH
    assert command.argument == ""


def test_parse_callbacks() -> None:
    assert parse_callback("select_7").type == CommandType.SELECT
    assert parse_callback("select_7").index == 7
    assert parse_callback("page_2").index == 2
    assert parse_callback("download_3").type == CommandType.DOWNLOAD
    assert parse_callback("watch_3").type == CommandType.REQUEST_WATCH
    assert parse_callback("watch_confirm_3").type == CommandType.CONFIRM_WATCH
    assert parse_callback("watch_cancel_3").type == CommandType.CANCEL_WATCH
    assert parse_callback("watch_disabled_3").type == CommandType.WATCH_DISABLED
    assert parse_callback("back_to_list").type == CommandType.BACK_TO_LIST


def test_malformed_callbacks_are_unknown() -> None:
    assert parse_callback("select_x").type == CommandType.UNKNOWN
    assert parse_callback("watch_confirm_").type == CommandType.UNKNOWN
    assert parse_callback("").type == CommandType.UNKNOWN


class _RecordingDelivery:
    def __init__(self) -> None:
        self.calls = []
        self.sessions = self

    def get(self, user_id):
        return None

    def __getattr__(self, name):
        if not name.startswith("on_"):
            raise AttributeError(name)

        def _handler(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return name

        return _handler


def test_dispatch_routes_to_entry_points() -> None:
    delivery = _RecordingDelivery()

    assert dispatch(delivery, 5, detect_command("/cari cats"), "alice") == "on_search_command"
    assert dispatch(delivery, 5, detect_command("/topup 10")) == "on_topup"
    assert dispatch(delivery, 5, parse_callback("select_4")) == "on_select"
    assert dispatch(delivery, 5, parse_callback("download_4")) == "on_confirm_download"
    assert dispatch(delivery, 5, parse_callback("watch_4")) == "on_request_watch"
    assert dispatch(delivery, 5, parse_callback("watch_confirm_4")) == "on_confirm_watch"
    assert dispatch(delivery, 5, parse_callback("watch_cancel_4")) == "on_cancel_watch"
    assert dispatch(delivery, 5, parse_callback("back_to_list")) == "on_paginate"
    assert dispatch(delivery, 5, parse_callback("watch_disabled_4")) is None
    assert dispatch(delivery, 5, detect_command("/help")) is None

    assert delivery.calls[0] == ("on_search_command", (5, "cats", "alice"), {})
    assert delivery.calls[2] == ("on_select", (5, 4, "User"), {})
    assert delivery.calls[-1] == ("on_paginate", (5, 0, "User"), {})
