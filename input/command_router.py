"""Chat command and button-callback routing for raw transport input."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CommandType(Enum):
    SEARCH = "search"
    TOPUP = "topup"
    BALANCE = "balance"
    HISTORY = "history"
    HELP = "help"
    PAGINATE = "paginate"
    SELECT = "select"
    DOWNLOAD = "download"
    REQUEST_WATCH = "request_watch"
    CONFIRM_WATCH = "confirm_watch"
    CANCEL_WATCH = "cancel_watch"
    WATCH_DISABLED = "watch_disabled"
    BACK_TO_LIST = "back_to_list"
    UNKNOWN = "unknown"


@dataclass
class Command:
    type: CommandType
    argument: str = ""
    index: Optional[int] = None


_COMMAND_ALIASES = {
    "cari": CommandType.SEARCH,
    "search": CommandType.SEARCH,
    "topup": CommandType.TOPUP,
    "saldo": CommandType.BALANCE,
    "balance": CommandType.BALANCE,
    "history": CommandType.HISTORY,
    "riwayat": CommandType.HISTORY,
    "start": CommandType.HELP,
    "help": CommandType.HELP,
}

# Longest prefixes first: "watch_confirm_" must win over "watch_".
_CALLBACK_PREFIXES = (
    ("watch_disabled_", CommandType.WATCH_DISABLED),
    ("watch_confirm_", CommandType.CONFIRM_WATCH),
    ("watch_cancel_", CommandType.CANCEL_WATCH),
    ("watch_", CommandType.REQUEST_WATCH),
    ("download_", CommandType.DOWNLOAD),
    ("select_", CommandType.SELECT),
    ("page_", CommandType.PAGINATE),
)

_COMMAND_RE = re.compile(r"^/(\w+)(?:@\w+)?(?:\s+(.*))?$", re.DOTALL)


def detect_command(text: str) -> Command:
    """Parse a slash command such as ``/cari cats`` or ``/topup@bot 5000``.

    Plain text without a leading slash is not a command.
    """
    raw = (text or "").strip()
    match = _COMMAND_RE.match(raw)
    if not match:
        return Command(type=CommandType.UNKNOWN, argument=raw)
    name = match.group(1).lower()
    argument = (match.group(2) or "").strip()
    return Command(type=_COMMAND_ALIASES.get(name, CommandType.UNKNOWN), argument=argument)


def parse_callback(data: str) -> Command:
    raw = (data or "").strip()
    if raw == "back_to_list":
        return Command(type=CommandType.BACK_TO_LIST)
    for prefix, command_type in _CALLBACK_PREFIXES:
        if raw.startswith(prefix):
            value = raw[len(prefix):]
            if value.isdigit():
                return Command(type=command_type, argument=value, index=int(value))
            break
    return Command(type=CommandType.UNKNOWN, argument=raw)


def dispatch(delivery, user_id, command: Command, display_name="User"):
    """Route a parsed command to the matching ``DeliverySession`` entry point.

    Returns ``None`` for commands the core does not handle (help text,
    disabled buttons, unknown input); the transport answers those itself.
    """
    kind = command.type
    if kind == CommandType.SEARCH:
        return delivery.on_search_command(user_id, command.argument, display_name)
    if kind == CommandType.TOPUP:
        return delivery.on_topup(user_id, command.argument, display_name)
    if kind == CommandType.BALANCE:
        return delivery.on_balance(user_id, display_name)
    if kind == CommandType.HISTORY:
        return delivery.on_history(user_id, display_name=display_name)
    if kind == CommandType.PAGINATE:
        return delivery.on_paginate(user_id, command.index, display_name)
    if kind == CommandType.BACK_TO_LIST:
        session = delivery.sessions.get(str(user_id))
        return delivery.on_paginate(user_id, session.page if session else 0, display_name)
    if kind == CommandType.SELECT:
        return delivery.on_select(user_id, command.index, display_name)
    if kind == CommandType.DOWNLOAD:
        return delivery.on_confirm_download(user_id, command.index, display_name)
    if kind == CommandType.REQUEST_WATCH:
        return delivery.on_request_watch(user_id, command.index, display_name)
    if kind == CommandType.CONFIRM_WATCH:
        return delivery.on_confirm_watch(user_id, command.index, display_name)
    if kind == CommandType.CANCEL_WATCH:
        return delivery.on_cancel_watch(user_id, command.index, display_name)
    return None
