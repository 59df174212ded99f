from .config import DeliverySettings, build_settings, load_config, validate_config
from .delivery import DeliverySession, build_delivery_session
from .ledger import BalanceLedger
from .paths import EnginePaths
from .render import RenderPayload
from .session_store import SessionStore

__all__ = [
    "BalanceLedger",
    "DeliverySession",
    "DeliverySettings",
    "EnginePaths",
    "RenderPayload",
    "SessionStore",
    "build_delivery_session",
    "build_settings",
    "load_config",
    "validate_config",
]
