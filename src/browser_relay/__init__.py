"""browser-relay: session and action orchestration for remote headless browsers."""

from browser_relay.config import RelayConfig, load_config
from browser_relay.driver import BrowserDriver
from browser_relay.exceptions import (
    ActionError,
    BatchValidationError,
    DriverUnavailable,
    LivenessFatal,
    QuiescenceTimeout,
    RelayError,
    SelectorTimeout,
    SessionNotFound,
    SnapshotError,
)
from browser_relay.service import BrowserService

__all__ = [
    "ActionError",
    "BatchValidationError",
    "BrowserDriver",
    "BrowserService",
    "DriverUnavailable",
    "LivenessFatal",
    "QuiescenceTimeout",
    "RelayConfig",
    "RelayError",
    "SelectorTimeout",
    "SessionNotFound",
    "SnapshotError",
    "load_config",
]
